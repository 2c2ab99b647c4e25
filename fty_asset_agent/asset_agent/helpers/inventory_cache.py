# asset_agent/helpers/inventory_cache.py
"""
Last-seen inventory values, keyed ``iname:keytag``.

Used by the inventory actor to skip ext-attribute writes whose value did not
change. The cache is bounded; when full the oldest entry is dropped.
"""
from threading import RLock
from typing import Dict, Mapping, Optional

from sqlalchemy.orm import Session

from asset_agent.core.config import settings
from asset_agent.core.logger import app_logger
from asset_agent.helpers.asset_db import upsert_ext_attribute
from asset_agent.helpers.db_utils import get_asset_by_name


def cache_key(iname: str, keytag: str) -> str:
    return f"{iname}:{keytag}"


class InventoryCache:
    def __init__(self, max_entries: Optional[int] = None) -> None:
        self._lock = RLock()
        self._store: Dict[str, str] = {}
        self._max_entries = max_entries if max_entries is not None else settings.INVENTORY_CACHE_MAX_ENTRIES

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._store.get(key)

    def set(self, key: str, value: str) -> None:
        if self._max_entries <= 0:
            return
        with self._lock:
            if key in self._store:
                self._store[key] = value
                return
            # FIFO eviction
            if len(self._store) >= self._max_entries:
                self._evict_key(next(iter(self._store)))
            self._store[key] = value

    def _evict_key(self, key: str) -> None:
        self._store.pop(key, None)

    def clear_prefix(self, prefix: str) -> int:
        with self._lock:
            keys_to_delete = [key for key in self._store if key.startswith(prefix)]
            for key in keys_to_delete:
                self._evict_key(key)
            return len(keys_to_delete)

    def vacuum_asset(self, iname: str) -> int:
        """Forgets every cached attribute of a deleted asset."""
        return self.clear_prefix(f"{iname}:")

    def invalidate_all(self) -> None:
        with self._lock:
            self._store.clear()


def process_insert_inventory(
    db: Session,
    iname: str,
    ext: Mapping[str, str],
    read_only: bool = True,
    cache: Optional[InventoryCache] = None,
) -> int:
    """
    Writes the inventory ext-attributes of one asset, skipping values equal
    to the cached ones. Returns the number of attributes written.

    Raises:
        ElementNotFound: when the asset is unknown
    """
    element = get_asset_by_name(db, iname)
    written = 0
    for keytag, value in ext.items():
        key = cache_key(iname, keytag)
        if cache is not None and cache.get(key) == value:
            continue
        upsert_ext_attribute(db, element.id, keytag, value, read_only)
        written += 1
    db.commit()

    if cache is not None:
        for keytag, value in ext.items():
            cache.set(cache_key(iname, keytag), value)
    app_logger.debug("Inventory stored", extra={"iname": iname, "written": written, "received": len(ext)})
    return written
