# avotrace/services/lots/lot_service.py
from __future__ import annotations

from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import current_app
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from avotrace.errors import (
    AccessDeniedError,
    LotStateError,
    NotFoundError,
    StepIncompleteError,
    StorageUnavailableError,
    ValidationFailed,
    VersionConflictError,
)
from avotrace.models.lot_models import (
    FINAL_STATUSES,
    LotCreateModel,
    LotDraftUpdateModel,
    LotModel,
    LotStatus,
)
from avotrace.models.stage_models import STAGES, STAGE_BY_KEY, TOTAL_STEPS, stage_for_step
from avotrace.mongo_safe import require_col
from avotrace.services.lots.step_validator import (
    completion_percentage,
    form_completion_percentage,
    missing_fields,
    step_validity,
)
from avotrace.services.serialization import parse_object_id, public_doc

LOTS = "lots"
LOT_ARCHIVES = "lot_archives"

STAGE_KEYS = tuple(s.key for s in STAGES)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def serialize_lot(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = public_doc(doc)
    out["progress"] = completion_percentage(out.get("completedSteps") or [])
    return out


def _visibility_filter(user_id: str) -> Dict[str, Any]:
    return {
        "$or": [
            {"globallyAccessible": True},
            {"createdBy": user_id},
            {"assignedUsers": user_id},
        ]
    }


def _can_access(doc: Dict[str, Any], user_id: Optional[str]) -> bool:
    if user_id is None:
        return True
    return (
        bool(doc.get("globallyAccessible"))
        or doc.get("createdBy") == user_id
        or user_id in (doc.get("assignedUsers") or [])
    )


class LotService:
    """
    Multi-step lot workflow over the `lots` collection.

    Every write goes through `_write()`, which bumps `version` and refuses
    to overwrite a document whose version moved since it was read (or since
    the caller's `base_version`). Failed operations write nothing.
    """

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def _generate_lot_number(now: Optional[datetime] = None) -> str:
        now = now or _now()
        return f"LOT-{now.strftime('%Y%m%d')}-{str(now.timestamp()).replace('.', '')[-5:]}"

    @staticmethod
    def _load(lot_id: str, user_id: Optional[str]) -> Dict[str, Any]:
        oid = parse_object_id(lot_id)
        doc = require_col(LOTS).find_one({"_id": oid}) if oid else None
        if not doc:
            raise NotFoundError(f"Lot {lot_id} not found")
        if not _can_access(doc, user_id):
            raise AccessDeniedError(f"Lot {lot_id} is restricted")
        return doc

    @staticmethod
    def _ensure_editable(doc: Dict[str, Any]) -> None:
        if doc.get("status") in FINAL_STATUSES:
            raise LotStateError(
                f"Lot {doc.get('lotNumber')} is {doc.get('status')} and can no longer be edited"
            )

    @staticmethod
    def _merge_stage(doc: Dict[str, Any], key: str, data: Dict[str, Any]) -> Dict[str, Any]:
        stage = STAGE_BY_KEY[key]
        current = doc.get(key) or {}
        return stage.model_validate({**current, **(data or {})}).model_dump()

    @staticmethod
    def _write(
        doc: Dict[str, Any],
        set_fields: Dict[str, Any],
        base_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        col = require_col(LOTS)
        stored = int(doc.get("version") or 0)
        expected = stored if base_version is None else int(base_version)
        if expected != stored:
            raise VersionConflictError(str(doc["_id"]), expected, stored)

        set_fields = {**set_fields, "updatedAt": _now()}
        updated = col.find_one_and_update(
            {"_id": doc["_id"], "version": expected},
            {"$set": set_fields, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            current = col.find_one({"_id": doc["_id"]}, {"version": 1})
            if current is None:
                raise NotFoundError(f"Lot {doc['_id']} not found")
            raise VersionConflictError(str(doc["_id"]), expected, int(current.get("version") or 0))
        return updated

    @staticmethod
    def _snapshot(doc: Dict[str, Any], user_id: Optional[str]) -> Dict[str, Any]:
        """
        Freeze a completed lot into `lot_archives` and stamp archiveId on
        the working record.
        """
        archive = deepcopy(doc)
        source_id = archive.pop("_id")
        archive.pop("archiveId", None)
        archive.update({
            "sourceLotId": str(source_id),
            "status": LotStatus.ARCHIVED.value,
            "archivedAt": _now(),
            "archivedBy": user_id or "",
        })
        res = require_col(LOT_ARCHIVES).insert_one(archive)

        current_app.logger.info("Lot %s archived as %s", doc.get("lotNumber"), res.inserted_id)
        return LotService._write(doc, {"archiveId": str(res.inserted_id)})

    @staticmethod
    def _auto_archive(doc: Dict[str, Any], user_id: Optional[str]) -> Dict[str, Any]:
        """
        Snapshot a freshly completed lot. The completion itself is already
        stored, so a failed snapshot leaves the lot completed without
        archiveId; `complete_lot` or `archive_lot` write it later.
        """
        if not current_app.config.get("LOT_AUTO_ARCHIVE") or doc.get("archiveId"):
            return doc
        try:
            return LotService._snapshot(doc, user_id)
        except (PyMongoError, StorageUnavailableError):
            current_app.logger.exception("Archive snapshot failed for lot %s", doc.get("lotNumber"))
            return doc

    # -----------------------------
    # CREATE
    # -----------------------------
    @staticmethod
    def create_lot(user_id: str, payload: LotCreateModel) -> Dict[str, Any]:
        now = _now()
        stages = {
            key: STAGE_BY_KEY[key].model_validate(data)
            for key, data in payload.stages.items()
        }

        lot_number = (
            (payload.lotNumber or "").strip()
            or (stages["harvest"].lotNumber if "harvest" in stages else "")
            or LotService._generate_lot_number(now)
        )

        assigned: List[str] = []
        for uid in [user_id, *payload.assignedUsers]:
            if uid and uid not in assigned:
                assigned.append(uid)

        lot = LotModel(
            lotNumber=lot_number,
            status=LotStatus.DRAFT,
            createdBy=user_id,
            assignedUsers=assigned,
            globallyAccessible=payload.globallyAccessible,
            **stages,
        )
        doc = lot.model_dump(mode="json", exclude={"id", "createdAt", "updatedAt", "completedAt"})
        doc.update({"createdAt": now, "updatedAt": now, "completedAt": None})

        require_col(LOTS).insert_one(doc)
        current_app.logger.info("Lot %s created by %s", lot_number, user_id)
        return serialize_lot(doc)

    # -----------------------------
    # READ
    # -----------------------------
    @staticmethod
    def get_lot(lot_id: str, user_id: Optional[str]) -> Dict[str, Any]:
        return serialize_lot(LotService._load(lot_id, user_id))

    @staticmethod
    def list_lots(user_id: str, status: Optional[str] = None, scope: str = "active") -> List[Dict[str, Any]]:
        clauses: List[Dict[str, Any]] = [_visibility_filter(user_id)]
        if status:
            clauses.append({"status": status})
        if scope == "active":
            clauses.append({"status": {"$ne": LotStatus.ARCHIVED.value}})
        elif scope == "archived":
            clauses.append({"status": LotStatus.ARCHIVED.value})
        elif scope != "all":
            raise ValidationFailed(f"Unknown scope {scope!r}")

        cur = require_col(LOTS).find({"$and": clauses}).sort([("updatedAt", -1)])
        return [serialize_lot(d) for d in cur]

    @staticmethod
    def progress(lot_id: str, user_id: Optional[str]) -> Dict[str, Any]:
        doc = LotService._load(lot_id, user_id)
        return {
            "lotId": str(doc["_id"]),
            "status": doc.get("status"),
            "currentStep": doc.get("currentStep", 1),
            "completedSteps": doc.get("completedSteps") or [],
            "stepValidity": {str(k): v for k, v in step_validity(doc).items()},
            "formCompletion": form_completion_percentage(doc),
            "progress": completion_percentage(doc.get("completedSteps") or []),
        }

    # -----------------------------
    # UPDATE
    # -----------------------------
    @staticmethod
    def save_draft(lot_id: str, user_id: str, payload: LotDraftUpdateModel) -> Dict[str, Any]:
        doc = LotService._load(lot_id, user_id)
        LotService._ensure_editable(doc)

        set_fields: Dict[str, Any] = {}
        for key, data in payload.stages.items():
            set_fields[key] = LotService._merge_stage(doc, key, data)

        harvest_number = (set_fields.get("harvest") or {}).get("lotNumber")
        if harvest_number:
            set_fields["lotNumber"] = harvest_number
        if payload.globallyAccessible is not None:
            set_fields["globallyAccessible"] = payload.globallyAccessible

        updated = LotService._write(doc, set_fields, payload.baseVersion)
        return serialize_lot(updated)

    @staticmethod
    def advance_step(
        lot_id: str,
        user_id: str,
        step: int,
        data: Dict[str, Any],
        base_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        try:
            stage = stage_for_step(step)
        except ValueError as e:
            raise ValidationFailed(str(e)) from e

        doc = LotService._load(lot_id, user_id)
        LotService._ensure_editable(doc)

        merged = LotService._merge_stage(doc, stage.key, data)
        missing = missing_fields(step, {stage.key: merged})
        if missing:
            raise StepIncompleteError(step, missing)

        completed = sorted(set(doc.get("completedSteps") or []) | {step})
        status = doc.get("status") or LotStatus.DRAFT.value
        if len(completed) == TOTAL_STEPS:
            status = LotStatus.COMPLETED.value
        elif status == LotStatus.DRAFT.value:
            status = LotStatus.IN_PROGRESS.value

        set_fields: Dict[str, Any] = {
            stage.key: merged,
            "completedSteps": completed,
            "currentStep": min(max(step + 1, int(doc.get("currentStep") or 1)), TOTAL_STEPS),
            "status": status,
        }
        if status == LotStatus.COMPLETED.value:
            set_fields["completedAt"] = _now()

        updated = LotService._write(doc, set_fields, base_version)
        current_app.logger.info(
            "Lot %s step %s done (%s/%s)", updated.get("lotNumber"), step, len(completed), TOTAL_STEPS
        )

        if status == LotStatus.COMPLETED.value:
            updated = LotService._auto_archive(updated, user_id)
        return serialize_lot(updated)

    @staticmethod
    def complete_lot(lot_id: str, user_id: str) -> Dict[str, Any]:
        doc = LotService._load(lot_id, user_id)
        if doc.get("status") == LotStatus.ARCHIVED.value:
            raise LotStateError(f"Lot {doc.get('lotNumber')} is already archived")

        for step, ok in step_validity(doc).items():
            if not ok:
                raise StepIncompleteError(step, missing_fields(step, doc))

        if doc.get("status") != LotStatus.COMPLETED.value:
            doc = LotService._write(doc, {
                "completedSteps": list(range(1, TOTAL_STEPS + 1)),
                "currentStep": TOTAL_STEPS,
                "status": LotStatus.COMPLETED.value,
                "completedAt": _now(),
            })
            current_app.logger.info("Lot %s completed", doc.get("lotNumber"))

        return serialize_lot(LotService._auto_archive(doc, user_id))

    @staticmethod
    def archive_lot(lot_id: str, user_id: str, delete_original: Optional[bool] = None) -> Dict[str, Any]:
        doc = LotService._load(lot_id, user_id)
        if doc.get("status") != LotStatus.COMPLETED.value:
            raise LotStateError(
                f"Only completed lots can be archived (lot {doc.get('lotNumber')} is {doc.get('status')})"
            )
        if delete_original is None:
            delete_original = bool(current_app.config.get("LOT_ARCHIVE_DELETE_ORIGINAL"))

        archive_oid = parse_object_id(doc.get("archiveId") or "")
        if archive_oid is None or require_col(LOT_ARCHIVES).find_one({"_id": archive_oid}, {"_id": 1}) is None:
            doc = LotService._snapshot(doc, user_id)
        archive_id = doc["archiveId"]

        if delete_original:
            require_col(LOTS).delete_one({"_id": doc["_id"]})
            current_app.logger.info("Lot %s removed from working set", doc.get("lotNumber"))
            return {"archiveId": archive_id, "deleted": True, "lot": None}

        updated = LotService._write(doc, {"status": LotStatus.ARCHIVED.value})
        return {"archiveId": archive_id, "deleted": False, "lot": serialize_lot(updated)}

    @staticmethod
    def duplicate_lot(lot_id: str, user_id: str) -> Dict[str, Any]:
        src = LotService._load(lot_id, user_id)
        lot_number = f"{src.get('lotNumber') or 'LOT'}-COPY"
        stages = {key: deepcopy(src.get(key) or {}) for key in STAGE_KEYS}
        # the harvest form carries the lot number too; keep both in step
        stages["harvest"]["lotNumber"] = lot_number
        payload = LotCreateModel(
            lotNumber=lot_number,
            globallyAccessible=bool(src.get("globallyAccessible", True)),
            stages=stages,
        )
        dup = LotService.create_lot(user_id, payload)
        current_app.logger.info("Lot %s duplicated into %s", src.get("lotNumber"), dup["id"])
        return dup

    @staticmethod
    def delete_lot(lot_id: str, user_id: str) -> Dict[str, Any]:
        doc = LotService._load(lot_id, user_id)
        require_col(LOTS).delete_one({"_id": doc["_id"]})
        current_app.logger.info("Lot %s deleted by %s", doc.get("lotNumber"), user_id)
        return {"deleted": str(doc["_id"])}

    # -----------------------------
    # ASSIGNMENT
    # -----------------------------
    @staticmethod
    def add_user_to_lot(lot_id: str, user_id: str, member_id: str) -> Dict[str, Any]:
        doc = LotService._load(lot_id, user_id)
        assigned = list(doc.get("assignedUsers") or [])
        if member_id in assigned:
            return serialize_lot(doc)
        assigned.append(member_id)
        return serialize_lot(LotService._write(doc, {"assignedUsers": assigned}))

    @staticmethod
    def remove_user_from_lot(lot_id: str, user_id: str, member_id: str) -> Dict[str, Any]:
        doc = LotService._load(lot_id, user_id)
        assigned = [u for u in (doc.get("assignedUsers") or []) if u != member_id]
        return serialize_lot(LotService._write(doc, {"assignedUsers": assigned}))

    # -----------------------------
    # ARCHIVE STORE
    # -----------------------------
    @staticmethod
    def list_archives(user_id: str) -> List[Dict[str, Any]]:
        cur = require_col(LOT_ARCHIVES).find(_visibility_filter(user_id)).sort([("archivedAt", -1)])
        return [serialize_lot(d) for d in cur]

    @staticmethod
    def get_archive(archive_id: str, user_id: str) -> Dict[str, Any]:
        oid = parse_object_id(archive_id)
        doc = require_col(LOT_ARCHIVES).find_one({"_id": oid}) if oid else None
        if not doc:
            raise NotFoundError(f"Archive {archive_id} not found")
        if not _can_access(doc, user_id):
            raise AccessDeniedError(f"Archive {archive_id} is restricted")
        return serialize_lot(doc)
