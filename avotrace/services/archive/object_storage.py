# avotrace/services/archive/object_storage.py
from __future__ import annotations

import os
import uuid
from typing import Dict, Optional

from flask import current_app
from werkzeug.utils import secure_filename

from avotrace.errors import ValidationFailed

ALLOWED_EXT = {".png", ".jpg", ".jpeg", ".webp", ".pdf"}


class ObjectStorage:
    """
    Uploaded files on local disk under UPLOAD_ROOT, served back at
    UPLOAD_URL_PREFIX/<storagePath>.
    """

    @staticmethod
    def root() -> str:
        return current_app.config["UPLOAD_ROOT"]

    @staticmethod
    def _folder(folder: str) -> str:
        parts = [secure_filename(p) for p in (folder or "").split("/")]
        return "/".join(p for p in parts if p)

    @staticmethod
    def resolve(storage_path: str) -> Optional[str]:
        """Absolute path for a stored object, or None if it escapes the root."""
        root = os.path.abspath(ObjectStorage.root())
        abs_path = os.path.abspath(os.path.join(root, storage_path or ""))
        if abs_path == root or not abs_path.startswith(root + os.sep):
            return None
        return abs_path

    @staticmethod
    def put(folder: str, file_storage) -> Dict[str, str]:
        if not file_storage:
            raise ValidationFailed("file required")

        filename = secure_filename(file_storage.filename or "")
        if not filename:
            raise ValidationFailed("bad filename")

        ext = os.path.splitext(filename)[1].lower()
        if ext not in ALLOWED_EXT:
            raise ValidationFailed(f"invalid file type {ext or '(none)'}")

        rel_dir = ObjectStorage._folder(folder)
        stored_name = f"{uuid.uuid4().hex}{ext}"
        storage_path = f"{rel_dir}/{stored_name}" if rel_dir else stored_name

        abs_path = ObjectStorage.resolve(storage_path)
        if abs_path is None:
            raise ValidationFailed("bad storage path")
        os.makedirs(os.path.dirname(abs_path), exist_ok=True)
        file_storage.save(abs_path)

        prefix = current_app.config.get("UPLOAD_URL_PREFIX", "/files").rstrip("/")
        current_app.logger.info("Stored upload %s (%s)", storage_path, filename)
        return {
            "storagePath": storage_path,
            "fileUrl": f"{prefix}/{storage_path}",
            "filename": filename,
        }

    @staticmethod
    def delete(storage_path: Optional[str]) -> bool:
        if not storage_path:
            return False
        abs_path = ObjectStorage.resolve(storage_path)
        if abs_path is None or not os.path.isfile(abs_path):
            return False
        os.remove(abs_path)
        return True
