import httpx
import logging
from typing import Any, Dict, List, Optional
from .config import get_settings
from .errors import TransportError, UpstreamShapeError, UpstreamStatusError

logger = logging.getLogger(__name__)


def _body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class RecommendationClient:
    """Pass-through client for the upstream retrieval service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        s = get_settings()
        self.base = (s.recommendation_api_url if base_url is None else base_url).rstrip('/')
        self.timeout = s.recommendation_timeout if timeout is None else timeout
        self.transport = transport

    async def fetch_recommendations(self, user_id: str, limit: int = 10, simple_format: bool = True) -> List[Dict[str, Any]]:
        if not self.base:
            raise TransportError(503, "recommendation service is not configured")
        params = {
            "user_id": user_id,
            "limit": limit,
            "simple_format": "true" if simple_format else "false",
        }
        url = f"{self.base}/retrieval"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.error("Recommendation request for %s failed: %s", user_id, exc)
            raise TransportError(502, str(exc)) from exc

        data = _body(resp)
        if not resp.is_success:
            logger.error("Recommendation service answered %s for %s", resp.status_code, user_id)
            raise UpstreamStatusError(resp.status_code, data)
        envelope = data.get("data") if isinstance(data, dict) else None
        if isinstance(envelope, dict) and data.get("statusCode") == 200 and "items" in envelope:
            return envelope["items"]
        logger.error("Unexpected recommendation response for %s: %r", user_id, data)
        raise UpstreamShapeError(resp.status_code, data)
