"""
curator/client/api_client.py
HTTP client for the ranking API.

Error bodies are turned back into the same APIError subclasses the server
raised, so client code catches ValidationError / TierNotEmptyError /
PersistenceError regardless of which side of the wire it runs on.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from curator.errors import ExternalServiceError, error_from_payload

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


class RankingApiClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_id: Optional[int] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Accept": "application/json"}
        if user_id is not None:
            headers[USER_HEADER] = str(user_id)

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "RankingApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ExternalServiceError("ranking-api", f"{type(e).__name__}: {e}") from e

        if response.is_success and (response.status_code == 204 or not response.content):
            return None

        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text}

        if not response.is_success:
            if not isinstance(payload, dict):
                payload = {"message": str(payload)}
            error = error_from_payload(response.status_code, payload)
            logger.debug(f"{method} {path} failed: {response.status_code} {error.code}")
            raise error
        return payload

    # ==========================================
    # Tiers
    # ==========================================

    async def list_tiers(self, collection_id: int) -> List[Dict[str, Any]]:
        payload = await self._request("GET", f"/api/collections/{collection_id}/tiers")
        return payload["tiers"]

    async def list_items(self, collection_id: int) -> List[Dict[str, Any]]:
        payload = await self._request("GET", f"/api/collections/{collection_id}/items")
        return payload["items"]

    async def create_tier(
        self,
        collection_id: int,
        name: str,
        color: Optional[str] = None,
        sentiment: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = {"name": name, "color": color, "sentiment": sentiment}
        return await self._request(
            "POST",
            f"/api/collections/{collection_id}/tiers",
            json={k: v for k, v in body.items() if v is not None},
        )

    async def update_tier(self, rank_id: int, **changes) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            f"/api/tiers/{rank_id}",
            json={k: v for k, v in changes.items() if v is not None},
        )

    async def delete_tier(self, rank_id: int) -> None:
        await self._request("DELETE", f"/api/tiers/{rank_id}")

    async def reorder_tiers(self, collection_id: int, ordered_ids: Sequence[int]) -> None:
        await self._request(
            "PUT",
            f"/api/collections/{collection_id}/tiers/order",
            json={"ordered_ids": list(ordered_ids)},
        )

    async def assign_tier(self, collection_id: int, item_id: int, tier_name: str) -> Dict[str, Any]:
        return await self._request(
            "PUT",
            f"/api/collections/{collection_id}/items/{item_id}/tier",
            json={"tier": tier_name},
        )

    async def remove_tier(self, collection_id: int, item_id: int) -> Dict[str, Any]:
        return await self._request("DELETE", f"/api/collections/{collection_id}/items/{item_id}/tier")

    # ==========================================
    # Tournaments
    # ==========================================

    async def start_tournament(
        self,
        collection_id: int,
        pool_size: Optional[int] = None,
        include_unseen: bool = True,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"include_unseen": include_unseen}
        if pool_size is not None:
            body["pool_size"] = pool_size
        return await self._request("POST", f"/api/collections/{collection_id}/tournaments", json=body)

    async def next_pair(self, session_id: str, skip: bool = False) -> Dict[str, Any]:
        params = {"skip": "true"} if skip else None
        return await self._request("GET", f"/api/tournaments/{session_id}/pair", params=params)

    async def record_match(
        self,
        session_id: str,
        winner_id: Union[int, str],
        loser_id: Union[int, str],
        winner_name: Optional[str] = None,
        loser_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = {
            "winner_id": str(winner_id),
            "loser_id": str(loser_id),
            "winner_name": winner_name,
            "loser_name": loser_name,
        }
        return await self._request(
            "POST",
            f"/api/tournaments/{session_id}/matches",
            json={k: v for k, v in body.items() if v is not None},
        )

    async def promote_candidate(self, session_id: str, key: str) -> Dict[str, Any]:
        return await self._request("POST", f"/api/tournaments/{session_id}/candidates/{key}/promote")

    async def ignore_entry(self, session_id: str, key: Union[int, str]) -> Dict[str, Any]:
        return await self._request("POST", f"/api/tournaments/{session_id}/ignore/{key}")

    async def close_tournament(self, session_id: str) -> None:
        await self._request("DELETE", f"/api/tournaments/{session_id}")

    async def update_scores(self, updates: Dict[int, int]) -> None:
        await self._request(
            "POST",
            "/api/items/scores",
            json={"updates": [{"id": item_id, "elo": elo} for item_id, elo in updates.items()]},
        )
