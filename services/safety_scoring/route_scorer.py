"""
AI-assisted route scoring with deterministic fallback.
"""

import json
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from common.errors import UpstreamError
from libs.llm_client import LLMClient
from services.safety_scoring.scoring import fallback_route_score

logger = logging.getLogger(__name__)

SOURCE_AI = "ai"
SOURCE_FALLBACK = "fallback"


def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name} in model reply")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number {text} out of range in model reply")
    return value


def parse_ai_object(content: str) -> Dict[str, Any]:
    """
    Decode a model reply that must be a JSON object.

    NaN, Infinity and overflowing floats are refused: they would decode
    here but cannot be rendered back into a JSON response.

    Raises:
        ValueError: If the reply is not valid, finite JSON or not an object
    """
    result = json.loads(
        content, parse_constant=_reject_constant, parse_float=_finite_float
    )
    if not isinstance(result, dict):
        raise ValueError("model reply was not a JSON object")
    return result


def build_route_prompt(
    distance_m: float, duration_s: float, stories: Optional[List[Any]]
) -> str:
    return f"""Evaluate a walking route for women's safety.

Distance: {distance_m} meters
Duration: {duration_s} seconds
Stories: {json.dumps(stories if stories is not None else [], default=str)}

Respond ONLY with JSON in this exact format:
{{
  "score": 68,
  "level": "medium risk",
  "lighting": "medium",
  "incidents": "low",
  "visibility": "medium",
  "explanation": "Short explanation."
}}"""


class RouteScorer:
    """Scores a route through the LLM, falling back to the distance heuristic."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def score(
        self,
        distance_m: float,
        duration_s: float,
        stories: Optional[List[Any]] = None,
    ) -> Tuple[Dict[str, Any], str]:
        """
        Score a route.

        The model's JSON object is returned as-is; score range and label
        consistency are not re-checked.

        Returns:
            (result, source) where source is "ai" or "fallback"
        """
        if not self.llm.is_enabled():
            logger.warning("LLM not configured, using fallback route score")
            return fallback_route_score(distance_m, duration_s), SOURCE_FALLBACK

        try:
            content = await self.llm.complete(
                build_route_prompt(distance_m, duration_s, stories), json_mode=True
            )
            result = parse_ai_object(content)
        except UpstreamError as e:
            logger.warning(f"AI route scoring failed ({e.message}), using fallback")
            return fallback_route_score(distance_m, duration_s), SOURCE_FALLBACK
        except ValueError as e:
            logger.warning(f"AI route score unusable ({e}), using fallback")
            return fallback_route_score(distance_m, duration_s), SOURCE_FALLBACK

        logger.info(f"AI route score: {result.get('score')} ({result.get('level')})")
        return result, SOURCE_AI
