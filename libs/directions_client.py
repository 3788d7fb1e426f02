"""
Mapbox Directions API client for SafeHER backend.
Looks up walking routes and reduces them to distance and duration.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from httpx import AsyncClient, Timeout

from common.errors import RouteNotFoundError
from libs.config import Config

logger = logging.getLogger(__name__)


@dataclass
class RouteSummary:
    distance_m: float
    duration_s: float
    geometry: Optional[Dict[str, Any]] = None


def summarize_route(route: Any) -> Optional[RouteSummary]:
    """Reduce one Mapbox route object to a RouteSummary, None if malformed."""
    if not isinstance(route, dict):
        return None
    try:
        distance_m = float(route.get("distance", 0))
        duration_s = float(route.get("duration", 0))
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(distance_m) and math.isfinite(duration_s)):
        return None
    geometry = route.get("geometry")
    return RouteSummary(
        distance_m=distance_m,
        duration_s=duration_s,
        geometry=geometry if isinstance(geometry, dict) else None,
    )


class MapboxDirectionsClient:
    """Client for interacting with the Mapbox Directions API."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize Mapbox client.

        Args:
            access_token: Mapbox token. If None, reads Config.MAPBOX_TOKEN.
            base_url: API base URL. If None, reads Config.MAPBOX_BASE_URL.
            timeout: Request timeout in seconds. If None, reads Config.DIRECTIONS_TIMEOUT_SECONDS.
        """
        self.access_token = access_token or Config.MAPBOX_TOKEN
        if not self.access_token:
            logger.warning("MAPBOX_TOKEN not set. Directions lookups will be disabled.")

        self.client = AsyncClient(
            base_url=base_url or Config.MAPBOX_BASE_URL,
            timeout=Timeout(timeout if timeout is not None else Config.DIRECTIONS_TIMEOUT_SECONDS),
        )

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    def is_enabled(self) -> bool:
        """Check if directions are enabled (has access token)."""
        return bool(self.access_token)

    async def _fetch_routes(
        self,
        start: tuple[float, float],
        end: tuple[float, float],
        mode: str,
        alternatives: bool,
    ) -> Optional[List[Any]]:
        """Raw Mapbox route objects, or None if the service is unavailable."""
        if not self.is_enabled():
            logger.error("Mapbox directions are not enabled (missing token)")
            return None

        # Mapbox expects "lng,lat;lng,lat"
        coordinates = f"{start[1]},{start[0]};{end[1]},{end[0]}"
        url = f"/directions/v5/mapbox/{mode}/{coordinates}"
        params = {"access_token": self.access_token, "geometries": "geojson"}
        if alternatives:
            params["alternatives"] = "true"

        try:
            logger.info(
                f"Requesting Mapbox route: mode={mode}, alternatives={alternatives}, "
                f"start=({start[0]}, {start[1]}), end=({end[0]}, {end[1]})"
            )
            response = await self.client.get(url, params=params)
            data = response.json()

            if response.status_code == 404 or data.get("code") in ("NoRoute", "NoSegment"):
                raise RouteNotFoundError("No route found between locations")
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(f"Mapbox API error: {e.response.status_code}")
            return None
        except httpx.RequestError as e:
            # Timeouts are RequestErrors too
            logger.error(f"Mapbox request error: {e!r}")
            return None
        except ValueError as e:
            logger.error(f"Mapbox returned a non-JSON body: {e}")
            return None

        routes = data.get("routes") or []
        if not routes:
            raise RouteNotFoundError("No route found between locations")
        return routes

    async def get_route(
        self,
        start: tuple[float, float],
        end: tuple[float, float],
        mode: str = "walking",
    ) -> Optional[RouteSummary]:
        """
        Get the primary route between two points.

        Args:
            start: Start coordinates as (lat, lng)
            end: End coordinates as (lat, lng)
            mode: Mapbox routing profile ("walking", "cycling", "driving")

        Returns:
            RouteSummary of the first route, or None if the service is
            unavailable (no token, HTTP error, timeout, malformed route)

        Raises:
            RouteNotFoundError: If the service answered but found no route
        """
        routes = await self._fetch_routes(start, end, mode, alternatives=False)
        if routes is None:
            return None

        summary = summarize_route(routes[0])
        if summary is None:
            logger.error(f"Mapbox returned a malformed route: {routes[0]!r}")
            return None

        logger.info(f"Route found: distance={summary.distance_m}m duration={summary.duration_s}s")
        return summary

    async def get_routes(
        self,
        start: tuple[float, float],
        end: tuple[float, float],
        mode: str = "walking",
    ) -> Optional[List[RouteSummary]]:
        """
        Get the primary route plus any alternatives Mapbox offers.

        Malformed routes are dropped; if none survive the service is
        treated as unavailable.

        Returns:
            Routes in Mapbox order, or None if the service is unavailable

        Raises:
            RouteNotFoundError: If the service answered but found no route
        """
        routes = await self._fetch_routes(start, end, mode, alternatives=True)
        if routes is None:
            return None

        summaries = [s for s in (summarize_route(r) for r in routes) if s is not None]
        if len(summaries) < len(routes):
            logger.warning(f"Dropped {len(routes) - len(summaries)} malformed Mapbox routes")
        if not summaries:
            return None

        logger.info(f"Found {len(summaries)} route alternatives")
        return summaries


# Global client instance
_directions_client: Optional[MapboxDirectionsClient] = None


def get_directions_client() -> MapboxDirectionsClient:
    """Get Mapbox directions client instance (singleton)."""
    global _directions_client
    if _directions_client is None:
        _directions_client = MapboxDirectionsClient()
    return _directions_client


async def close_directions_client() -> None:
    """Close the shared client, if one was created."""
    global _directions_client
    if _directions_client is not None:
        await _directions_client.close()
        _directions_client = None
