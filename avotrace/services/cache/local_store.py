# avotrace/services/cache/local_store.py
"""
Two-tier record store: a Mongo collection (remote) in front of a JSON file
on local disk.

Writes go to Mongo first. When Mongo is unreachable the record is kept in
the local file flagged ``pendingSync`` and pushed later by ``sync()``.
Reads return the remote records merged with pending local ones, or the
local file alone when Mongo is down.

Records are plain JSON dicts keyed by a string ``id`` and carry an integer
``version``; a pending record whose remote copy has a higher version is
dropped on sync and reported as a conflict.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional

from flask import current_app
from pymongo.errors import PyMongoError

from avotrace.errors import StorageUnavailableError
from avotrace.mongo_safe import get_col

log = logging.getLogger(__name__)

# one lock per cache file, shared by every store instance and request thread
_LOCKS: Dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: str) -> threading.RLock:
    path = os.path.abspath(path)
    with _LOCKS_GUARD:
        lock = _LOCKS.get(path)
        if lock is None:
            lock = _LOCKS[path] = threading.RLock()
        return lock


def _strip_remote(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(doc)
    out["id"] = str(out.pop("_id", out.get("id")))
    out["pendingSync"] = False
    return out


class TwoTierStore:
    def __init__(self, key: str, collection: str, cache_dir: Optional[str] = None):
        self.key = key
        self.collection = collection
        self._cache_dir = cache_dir

    # -----------------------------
    # Local tier
    # -----------------------------
    @property
    def path(self) -> str:
        cache_dir = self._cache_dir or current_app.config["LOCAL_CACHE_DIR"]
        return os.path.join(cache_dir, f"{self.key}.json")

    def read_local(self) -> List[Dict[str, Any]]:
        if not os.path.isfile(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except ValueError:
                log.warning("Local cache %s is corrupt, ignoring it", self.path)
                return []
        return data if isinstance(data, list) else []

    @property
    def lock(self) -> threading.RLock:
        return _lock_for(self.path)

    def write_local(self, records: List[Dict[str, Any]]) -> None:
        path = self.path
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with self.lock:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=os.path.dirname(path),
                prefix=f".{self.key}.", suffix=".tmp", delete=False,
            ) as f:
                json.dump(records, f, ensure_ascii=False, indent=2, default=str)
            try:
                os.replace(f.name, path)
            except OSError:
                os.unlink(f.name)
                raise

    def _put_local(self, record: Dict[str, Any]) -> None:
        with self.lock:
            records = [r for r in self.read_local() if r.get("id") != record["id"]]
            records.append(record)
            self.write_local(records)

    def _drop_local(self, record_id: str) -> bool:
        with self.lock:
            records = self.read_local()
            kept = [r for r in records if r.get("id") != record_id]
            if len(kept) == len(records):
                return False
            self.write_local(kept)
            return True

    def pending(self) -> List[Dict[str, Any]]:
        return [r for r in self.read_local() if r.get("pendingSync")]

    # -----------------------------
    # Remote tier
    # -----------------------------
    def _col(self):
        return get_col(self.collection)

    # -----------------------------
    # Public API
    # -----------------------------
    def save(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Persist one record; returns it with ``pendingSync`` set accordingly."""
        record = {**record, "pendingSync": False}
        col = self._col()
        try:
            if col is None:
                raise StorageUnavailableError(f"Document store unavailable ({self.collection})")
            doc = {k: v for k, v in record.items() if k not in ("id", "pendingSync")}
            col.replace_one({"_id": record["id"]}, doc, upsert=True)
        except (PyMongoError, StorageUnavailableError) as e:
            log.warning("Remote write failed for %s/%s, kept locally: %s", self.key, record["id"], e)
            record["pendingSync"] = True

        self._put_local(record)
        return record

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        local = next((r for r in self.read_local() if r.get("id") == record_id), None)
        col = self._col()
        if col is None:
            return local
        try:
            doc = col.find_one({"_id": record_id})
        except PyMongoError as e:
            log.warning("Remote read failed for %s/%s: %s", self.key, record_id, e)
            return local

        remote = _strip_remote(doc) if doc else None
        if local and local.get("pendingSync"):
            if remote is None or int(local.get("version") or 0) >= int(remote.get("version") or 0):
                return local
        return remote

    def list(self) -> List[Dict[str, Any]]:
        local = self.read_local()
        col = self._col()
        if col is None:
            return local
        try:
            remote = [_strip_remote(d) for d in col.find({})]
        except PyMongoError as e:
            log.warning("Remote list failed for %s: %s", self.key, e)
            return local

        by_id = {r["id"]: r for r in remote}
        for r in local:
            if not r.get("pendingSync"):
                continue
            current = by_id.get(r["id"])
            if current is None or int(r.get("version") or 0) >= int(current.get("version") or 0):
                by_id[r["id"]] = r
        return list(by_id.values())

    def delete(self, record_id: str) -> bool:
        removed_local = self._drop_local(record_id)
        col = self._col()
        try:
            if col is None:
                raise StorageUnavailableError(f"Document store unavailable ({self.collection})")
            removed_remote = col.delete_one({"_id": record_id}).deleted_count > 0
        except (PyMongoError, StorageUnavailableError):
            if removed_local:
                return True
            raise
        return removed_local or removed_remote

    def sync(self) -> Dict[str, List[str]]:
        """
        Push pending local records to Mongo.
        Returns ids grouped as synced / conflicts / failed.
        """
        col = self._col()
        if col is None:
            raise StorageUnavailableError(f"Document store unavailable ({self.collection})")

        result: Dict[str, List[str]] = {"synced": [], "conflicts": [], "failed": []}

        with self.lock:
            kept: List[Dict[str, Any]] = []
            for r in self.read_local():
                if not r.get("pendingSync"):
                    kept.append(r)
                    continue
                try:
                    remote = col.find_one({"_id": r["id"]}, {"version": 1})
                    if remote and int(remote.get("version") or 0) > int(r.get("version") or 0):
                        log.warning("Sync conflict on %s/%s, remote version wins", self.key, r["id"])
                        result["conflicts"].append(r["id"])
                        continue
                    doc = {k: v for k, v in r.items() if k not in ("id", "pendingSync")}
                    col.replace_one({"_id": r["id"]}, doc, upsert=True)
                except PyMongoError as e:
                    log.warning("Sync failed for %s/%s: %s", self.key, r["id"], e)
                    result["failed"].append(r["id"])
                    kept.append(r)
                    continue
                kept.append({**r, "pendingSync": False})
                result["synced"].append(r["id"])

            self.write_local(kept)
        return result
