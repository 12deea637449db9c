"""Shortcut member and group lookups with an injectable name cache."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.app.shortcut.com/api/v3"
UNKNOWN_NAME = "Unknown"


class NameCache:
    """Id to display name cache, scoped to whoever creates it.

    The same id always resolves to the same name, so concurrent writers
    need no coordination: last writer wins.
    """

    def __init__(self):
        self._names = {}

    def get(self, kind: str, entity_id: str) -> Optional[str]:
        return self._names.get((kind, entity_id))

    def set(self, kind: str, entity_id: str, name: str):
        self._names[(kind, entity_id)] = name

    def __len__(self):
        return len(self._names)


class ShortcutDirectory:
    """Resolves Shortcut member and group ids to display names.

    Lookups never raise: unknown ids and API failures resolve to
    "Unknown". Failures are not cached so a later call can succeed.
    """

    def __init__(self, token: str, api_base: str = DEFAULT_API_BASE,
                 cache: Optional[NameCache] = None):
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.cache = cache if cache is not None else NameCache()

    def _request(self, endpoint: str):
        """Make authenticated request to the Shortcut API."""
        response = requests.get(
            f"{self.api_base}{endpoint}",
            headers={
                "Content-Type": "application/json",
                "Shortcut-Token": self.token
            },
            timeout=30
        )
        response.raise_for_status()
        return response.json()

    def _resolve(self, kind: str, entity_id: str, endpoint: str, extract_name) -> dict:
        if not entity_id:
            return {"id": entity_id, "displayName": UNKNOWN_NAME}

        cached = self.cache.get(kind, entity_id)
        if cached is not None:
            return {"id": entity_id, "displayName": cached}

        try:
            data = self._request(endpoint)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Failed to resolve {kind} {entity_id}: {e}")
            return {"id": entity_id, "displayName": UNKNOWN_NAME}

        name = extract_name(data) or UNKNOWN_NAME
        self.cache.set(kind, entity_id, name)
        return {"id": entity_id, "displayName": name}

    def resolve_member(self, member_id: str) -> dict:
        return self._resolve(
            "member", member_id, f"/members/{member_id}",
            lambda data: (data.get("profile") or {}).get("name")
        )

    def resolve_group(self, group_id: str) -> dict:
        return self._resolve(
            "group", group_id, f"/groups/{group_id}",
            lambda data: data.get("name")
        )

    def resolve_many(self, ids, kind: str = "member") -> dict:
        """Resolve several ids in parallel.

        Args:
            ids: Iterable of member or group ids
            kind: "member" or "group"

        Returns:
            Dict mapping each id to its display name
        """
        resolve = self.resolve_group if kind == "group" else self.resolve_member
        unique_ids = [i for i in dict.fromkeys(ids) if i]
        if not unique_ids:
            return {}

        results = {}
        with ThreadPoolExecutor(max_workers=10) as executor:
            futures = {executor.submit(resolve, entity_id): entity_id for entity_id in unique_ids}
            for future in as_completed(futures):
                resolved = future.result()
                results[resolved["id"]] = resolved["displayName"]

        return results
