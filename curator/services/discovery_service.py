"""
Discovery Service client.

The metadata providers behind discovery are opaque to the ranking core: it
only ever calls search(query, domain_hint) and treats the result as best
effort. Provider credentials (OAuth client-credentials) live in one
TokenCache owned by one client instance and are refreshed lazily, a safety
margin before they actually expire.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import httpx

from curator.config.settings import settings
from curator.errors import ExternalServiceError
from curator.services.tournament_types import Candidate

logger = logging.getLogger(__name__)


@dataclass
class TokenCache:
    """Bearer token plus its absolute expiry (epoch seconds)."""
    token: Optional[str] = None
    expires_at: float = 0.0

    def is_valid(self, now: float, margin: float = 0.0) -> bool:
        return self.token is not None and now < self.expires_at - margin

    def store(self, token: str, expires_in: float, now: float) -> None:
        self.token = token
        self.expires_at = now + expires_in

    def clear(self) -> None:
        self.token = None
        self.expires_at = 0.0


class DiscoveryService:
    """Contract the tournament pool builder relies on."""

    name = "discovery"

    async def search(self, query: str, domain_hint: Optional[str] = None) -> List[Candidate]:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class HttpDiscoveryService(DiscoveryService):
    """
    Discovery backed by an HTTP search endpoint.

    GET {base_url}/search?q=...&type=... returning either a list of results
    or {"results": [...]}, each result carrying title/name, description,
    imageUrl/image, id and optionally origin.
    """

    name = "discovery"

    def __init__(
        self,
        base_url: str,
        token_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: float = 10.0,
        refresh_margin: float = 300.0,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_margin = refresh_margin
        self.token_cache = TokenCache()
        self._clock = clock
        self._token_lock = asyncio.Lock()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def requires_auth(self) -> bool:
        return bool(self.token_url and self.client_id and self.client_secret)

    async def _get_token(self) -> Optional[str]:
        if not self.requires_auth:
            return None

        # Fast path without the lock
        if self.token_cache.is_valid(self._clock(), self.refresh_margin):
            return self.token_cache.token

        async with self._token_lock:
            # Another coroutine may have refreshed while we waited
            if self.token_cache.is_valid(self._clock(), self.refresh_margin):
                return self.token_cache.token

            logger.info("Refreshing discovery access token")
            response = await self._client.post(
                self.token_url,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
            if response.status_code != 200:
                raise ExternalServiceError(
                    self.name, f"token request failed with HTTP {response.status_code}"
                )
            payload = response.json()
            token = payload.get("access_token")
            if not token:
                raise ExternalServiceError(self.name, "token response had no access_token")
            self.token_cache.store(token, float(payload.get("expires_in", 3600)), self._clock())
            return token

    async def search(self, query: str, domain_hint: Optional[str] = None) -> List[Candidate]:
        try:
            token = await self._get_token()
            headers = {"Accept": "application/json"}
            if token:
                headers["Authorization"] = f"Bearer {token}"

            params = {"q": query}
            if domain_hint:
                params["type"] = domain_hint

            logger.info(f"Discovery search: query='{query}', type={domain_hint}")
            response = await self._client.get(f"{self.base_url}/search", params=params, headers=headers)

            if response.status_code == 401:
                # Token revoked early; next call fetches a fresh one
                self.token_cache.clear()
                raise ExternalServiceError(self.name, "unauthorized")
            response.raise_for_status()
            payload = response.json()

        except ExternalServiceError:
            raise
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.name, f"request failed: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ExternalServiceError(self.name, f"invalid JSON payload: {e}") from e

        results = payload.get("results", []) if isinstance(payload, dict) else payload
        if not isinstance(results, list):
            raise ExternalServiceError(self.name, "unexpected payload shape")

        candidates = [c for c in (self._to_candidate(r) for r in results) if c is not None]
        logger.info(f"Discovery returned {len(candidates)} candidate(s)")
        return candidates

    def _to_candidate(self, result: Any) -> Optional[Candidate]:
        if not isinstance(result, dict):
            return None
        name = result.get("title") or result.get("name")
        if not name:
            return None
        external_id = result.get("id")
        return Candidate(
            name=str(name),
            description=result.get("description"),
            image=result.get("imageUrl") or result.get("image"),
            origin=result.get("origin") or result.get("source") or self.name,
            external_id=str(external_id) if external_id is not None else None,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def build_discovery_service() -> Optional[DiscoveryService]:
    """Discovery client from settings, or None when discovery is not configured."""
    if not settings.discovery_configured():
        logger.info("Discovery service not configured; tournaments will use owned items only")
        return None
    return HttpDiscoveryService(
        base_url=settings.DISCOVERY_BASE_URL,
        token_url=settings.DISCOVERY_TOKEN_URL,
        client_id=settings.DISCOVERY_CLIENT_ID,
        client_secret=settings.DISCOVERY_CLIENT_SECRET,
        timeout=settings.DISCOVERY_TIMEOUT_SECONDS,
        refresh_margin=settings.TOKEN_REFRESH_MARGIN_SECONDS,
    )
