# avotrace/services/archive/archive_service.py
from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Dict, List

from flask import current_app
from pymongo.errors import PyMongoError

from avotrace.errors import NotFoundError, StorageUnavailableError
from avotrace.models.archive_models import BoxCreateModel, BoxItemCreateModel
from avotrace.mongo_safe import require_col
from avotrace.services.archive.object_storage import ObjectStorage
from avotrace.services.serialization import parse_object_id, public_doc

BOXES = "archive_boxes"
ITEMS = "archive_items"

_TYPE_BY_EXT = {
    ".pdf": "pdf",
    ".png": "image",
    ".jpg": "image",
    ".jpeg": "image",
    ".webp": "image",
}


class ArchiveService:
    """Per-user document boxes; each box holds notes and uploaded files."""

    @staticmethod
    def _load_box(box_id: str, user_id: str) -> Dict[str, Any]:
        oid = parse_object_id(box_id)
        box = require_col(BOXES).find_one({"_id": oid, "userId": user_id}) if oid else None
        if not box:
            raise NotFoundError(f"Box {box_id} not found")
        return box

    # -----------------------------
    # Boxes
    # -----------------------------
    @staticmethod
    def create_box(user_id: str, payload: BoxCreateModel) -> Dict[str, Any]:
        doc = {
            **payload.model_dump(),
            "userId": user_id,
            "createdAt": datetime.now(timezone.utc),
        }
        res = require_col(BOXES).insert_one(doc)
        doc["_id"] = res.inserted_id
        return public_doc(doc)

    @staticmethod
    def list_boxes(user_id: str) -> List[Dict[str, Any]]:
        items = require_col(ITEMS)
        out = []
        for box in require_col(BOXES).find({"userId": user_id}).sort("createdAt", -1):
            row = public_doc(box)
            row["itemCount"] = items.count_documents({"boxId": str(box["_id"])})
            out.append(row)
        return out

    @staticmethod
    def delete_box(box_id: str, user_id: str) -> Dict[str, Any]:
        """Delete a box with every item in it and their stored files."""
        box = ArchiveService._load_box(box_id, user_id)
        items = require_col(ITEMS)

        removed_files = 0
        for item in items.find({"boxId": str(box["_id"])}, {"storagePath": 1}):
            if ObjectStorage.delete(item.get("storagePath")):
                removed_files += 1
        removed_items = items.delete_many({"boxId": str(box["_id"])}).deleted_count
        require_col(BOXES).delete_one({"_id": box["_id"]})

        current_app.logger.info(
            "Box %s deleted (%d items, %d files)", box_id, removed_items, removed_files
        )
        return {"deleted": str(box["_id"]), "items": removed_items, "files": removed_files}

    # -----------------------------
    # Items
    # -----------------------------
    @staticmethod
    def list_items(box_id: str, user_id: str) -> List[Dict[str, Any]]:
        box = ArchiveService._load_box(box_id, user_id)
        cur = require_col(ITEMS).find({"boxId": str(box["_id"])}).sort("createdAt", -1)
        return [public_doc(d) for d in cur]

    @staticmethod
    def add_item(box_id: str, user_id: str, payload: BoxItemCreateModel, file_storage=None) -> Dict[str, Any]:
        box = ArchiveService._load_box(box_id, user_id)
        col = require_col(ITEMS)

        stored = None
        if file_storage is not None and file_storage.filename:
            stored = ObjectStorage.put(f"archive/{user_id}/{box['_id']}", file_storage)

        item_type = payload.type
        if not item_type:
            ext = os.path.splitext(stored["storagePath"])[1].lower() if stored else ""
            item_type = _TYPE_BY_EXT.get(ext, "note")

        doc = {
            "boxId": str(box["_id"]),
            "name": payload.name,
            "type": item_type,
            "fileUrl": stored["fileUrl"] if stored else None,
            "storagePath": stored["storagePath"] if stored else None,
            "userId": user_id,
            "createdAt": datetime.now(timezone.utc),
        }

        try:
            res = col.insert_one(doc)
        except PyMongoError as e:
            # nothing may point at the file, remove it again
            if stored:
                ObjectStorage.delete(stored["storagePath"])
            current_app.logger.exception("Archive item insert failed for box %s", box_id)
            raise StorageUnavailableError(f"Could not save item: {e}")

        doc["_id"] = res.inserted_id
        return public_doc(doc)

    @staticmethod
    def delete_item(item_id: str, user_id: str) -> Dict[str, Any]:
        oid = parse_object_id(item_id)
        col = require_col(ITEMS)
        item = col.find_one({"_id": oid, "userId": user_id}) if oid else None
        if not item:
            raise NotFoundError(f"Item {item_id} not found")

        col.delete_one({"_id": item["_id"]})
        ObjectStorage.delete(item.get("storagePath"))
        return {"deleted": str(item["_id"])}
