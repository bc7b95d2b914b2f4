"""Folder set discovery with a short-lived cache."""
from __future__ import annotations

import json
import logging
import sqlite3

from .state import StateStore

log = logging.getLogger(__name__)

CACHE_KEY_FOLDER_IDS = "cachedFolderIds"
DEFAULT_CACHE_TTL_SECONDS = 300


def cache_key(root_id: str) -> str:
    return f"{CACHE_KEY_FOLDER_IDS}:{root_id}"


def walk_folder_ids(backend, root_id: str) -> list[str]:
    """
    Collect root_id and every transitive subfolder id.

    Iterative (explicit stack) so deep trees cannot exhaust the call stack.
    Order follows the backend's child enumeration and is not meaningful.

    Raises:
        BackendUnavailable: if the root cannot be resolved or a listing fails
    """
    backend.get_folder(root_id)

    seen: set[str] = set()
    folder_ids: list[str] = []
    stack = [root_id]
    while stack:
        folder_id = stack.pop()
        if folder_id in seen:
            continue
        seen.add(folder_id)
        folder_ids.append(folder_id)
        stack.extend(backend.list_child_folder_ids(folder_id))
    return folder_ids


class FolderIndex:
    def __init__(self, backend, store: StateStore, ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS) -> None:
        self.backend = backend
        self.store = store
        self.ttl_seconds = ttl_seconds

    def _read_cache(self, root_id: str) -> list[str] | None:
        try:
            raw = self.store.cache_get(cache_key(root_id))
        except sqlite3.Error as e:
            log.warning(f"Folder cache read failed: {e}")
            return None
        if not raw:
            return None
        try:
            folder_ids = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("Cached folder IDs are corrupt; re-walking")
            return None
        if not isinstance(folder_ids, list) or not all(isinstance(f, str) for f in folder_ids):
            log.warning("Cached folder IDs have an unexpected shape; re-walking")
            return None
        return folder_ids or None

    def resolve_folder_set(self, root_id: str) -> list[str]:
        """
        Return the ids of root_id and all of its subfolders.

        Served from cache while the cached entry is alive; otherwise walks the
        tree and caches a non-empty result for ttl_seconds.
        """
        cached = self._read_cache(root_id)
        if cached is not None:
            log.debug(f"Folder cache hit: {len(cached)} folders")
            return cached

        log.info("No cached folder IDs found; fetching now.")
        folder_ids = walk_folder_ids(self.backend, root_id)
        log.info(f"Found {len(folder_ids)} folders under {root_id}")

        if folder_ids:
            try:
                self.store.cache_put(cache_key(root_id), json.dumps(folder_ids), self.ttl_seconds)
            except sqlite3.Error as e:
                log.warning(f"Failed to cache folder IDs: {e}")
        return folder_ids

    def clear(self, root_id: str) -> None:
        try:
            self.store.cache_remove(cache_key(root_id))
            log.info("Cached folder IDs cleared.")
        except sqlite3.Error as e:
            log.error(f"Error clearing cached folder IDs: {e}")
