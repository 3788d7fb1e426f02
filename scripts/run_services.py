#!/usr/bin/env python3
"""
Run every SafeHER service locally, one uvicorn process per service.

Usage:
    python scripts/run_services.py                 # All services + docs index
    python scripts/run_services.py stories         # Only the named services
    python scripts/run_services.py --reload

Ports come from common.constants.SERVICES; the discovery index runs on
DOCS_SERVICE.
"""

import argparse
import subprocess
import sys
from pathlib import Path
from typing import List, Tuple

# Allow imports from parent directory
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from common.constants import DOCS_SERVICE, SERVICES


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run SafeHER services with uvicorn")
    parser.add_argument("services", nargs="*", help=f"Subset of: {', '.join(SERVICES)}")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    parser.add_argument("--no-docs", action="store_true", help="Skip the discovery index")
    return parser.parse_args()


def select_targets(names: List[str], with_docs: bool) -> List[Tuple[str, str, int]]:
    unknown = [n for n in names if n not in SERVICES]
    if unknown:
        raise SystemExit(f"Unknown service(s): {', '.join(unknown)}")

    targets = [(name, *SERVICES[name]) for name in (names or SERVICES)]
    if with_docs:
        targets.append(("docs", *DOCS_SERVICE))
    return targets


def main() -> int:
    args = parse_args()
    targets = select_targets(args.services, with_docs=not args.no_docs)

    processes = []
    for name, module, port in targets:
        cmd = [
            sys.executable, "-m", "uvicorn", f"{module}:app",
            "--host", args.host, "--port", str(port),
        ]
        if args.reload:
            cmd.append("--reload")
        print(f"  ✓ {name:<16} http://{args.host}:{port}/docs")
        processes.append(subprocess.Popen(cmd, cwd=ROOT))

    try:
        for process in processes:
            process.wait()
    except KeyboardInterrupt:
        print("\nStopping services")
        for process in processes:
            process.terminate()
        for process in processes:
            process.wait()
    return 0


if __name__ == "__main__":
    sys.exit(main())
