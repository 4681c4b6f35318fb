import logging
import os
from typing import Optional

import httpx
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

MAPBOX_DIRECTIONS_URL = os.getenv(
    "MAPBOX_DIRECTIONS_URL", "https://api.mapbox.com/directions/v5/mapbox/driving"
)
DIRECTIONS_TIMEOUT = float(os.getenv("DIRECTIONS_TIMEOUT", "10"))


class DirectionsClient:
    """Driving time/distance between two points via the Mapbox Directions API."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token if access_token is not None else os.getenv("MAPBOX_ACCESS_TOKEN")
        self.timeout = timeout or DIRECTIONS_TIMEOUT
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.access_token)

    async def route(self, origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float) -> Optional[dict]:
        """
        Returns ``{"duration_s", "distance_m"}`` for the first route, or None
        when the token is missing, the API fails or no route exists.
        """
        if not self.configured:
            return None
        # Mapbox takes lng,lat pairs
        url = f"{MAPBOX_DIRECTIONS_URL}/{origin_lng},{origin_lat};{dest_lng},{dest_lat}"
        params = {"access_token": self.access_token, "overview": "false"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params=params)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.debug("Mapbox directions → HTTP %s", exc.response.status_code)
            return None
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("Mapbox directions request failed: %s", exc)
            return None

        routes = data.get("routes") or []
        if not routes:
            return None
        r = routes[0]
        return {"duration_s": float(r.get("duration", 0)), "distance_m": float(r.get("distance", 0))}


_client: Optional[DirectionsClient] = None


def get_directions_client() -> DirectionsClient:
    global _client
    if _client is None:
        _client = DirectionsClient()
    return _client


__all__ = ["DirectionsClient", "get_directions_client"]
