# avotrace/services/quality/quality_service.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import current_app

from avotrace.errors import LotStateError, NotFoundError, ValidationFailed, VersionConflictError
from avotrace.models.quality_models import (
    AVERAGED_FIELDS,
    EDITABLE_STATUSES,
    PaletteData,
    QcCreateModel,
    QcFormData,
    QcPhase,
    QcRecordModel,
    QcStatus,
    QcUpdateModel,
)
from avotrace.services.archive.object_storage import ObjectStorage
from avotrace.services.cache.local_store import TwoTierStore
from avotrace.services.lots.lot_service import LotService

QC_COLLECTION = "quality_control_lots"
QC_CACHE_KEY = "quality_control_lots"

MAX_PALETTES = 50


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def store() -> TwoTierStore:
    return TwoTierStore(QC_CACHE_KEY, QC_COLLECTION)


def palette_averages(record: Dict[str, Any], fields=AVERAGED_FIELDS) -> Dict[str, float]:
    """
    Mean of the positive numeric palette values per field, one decimal.
    Non-numeric entries ("C", "") and zeros are left out; no values -> 0.0.
    """
    palettes = (record.get("formData") or {}).get("palettes") or []
    out: Dict[str, float] = {}
    for field in fields:
        values = []
        for p in palettes:
            try:
                v = float(str(p.get(field) or "0").replace(",", "."))
            except ValueError:
                continue
            if v > 0:
                values.append(v)
        out[field] = round(sum(values) / len(values), 1) if values else 0.0
    return out


class QualityService:
    """
    Quality-control sheets, one per controlled lot. The controller fills
    the sheet and submits it; the chief approves or rejects it.
    """

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def _generate_lot_number() -> str:
        return f"QC-{datetime.now(timezone.utc).strftime('%Y%m%d')}-{uuid.uuid4().hex[:5].upper()}"

    @staticmethod
    def _load(record_id: str) -> Dict[str, Any]:
        record = store().get(record_id)
        if not record:
            raise NotFoundError(f"Quality record {record_id} not found")
        return record

    @staticmethod
    def _save(record: Dict[str, Any], base_version: Optional[int] = None) -> Dict[str, Any]:
        stored = int(record.get("version") or 0)
        if base_version is not None and int(base_version) != stored:
            raise VersionConflictError(record["id"], int(base_version), stored)

        validated = QcRecordModel.model_validate(record).model_dump(mode="json")
        validated["version"] = stored + 1
        validated["updatedAt"] = _now_iso()
        return store().save(validated)

    @staticmethod
    def _ensure_editable(record: Dict[str, Any]) -> None:
        if record.get("status") not in EDITABLE_STATUSES:
            raise LotStateError(
                f"Quality record {record.get('lotNumber')} is {record.get('status')} and locked for review"
            )

    @staticmethod
    def _new_record(user_id: str, lot_number: Optional[str], form: Dict[str, Any], **extra) -> Dict[str, Any]:
        now = _now_iso()
        return {
            "id": extra.pop("id", None) or uuid.uuid4().hex,
            "lotNumber": lot_number or QualityService._generate_lot_number(),
            "formData": QcFormData.model_validate(form or {}).model_dump(mode="json"),
            "images": [],
            "status": QcStatus.DRAFT.value,
            "phase": QcPhase.CONTROLLER.value,
            "createdBy": user_id,
            "version": 0,
            "createdAt": now,
            "updatedAt": now,
            **extra,
        }

    # -----------------------------
    # CRUD
    # -----------------------------
    @staticmethod
    def create(user_id: str, payload: QcCreateModel) -> Dict[str, Any]:
        record = QualityService._new_record(
            user_id, payload.lotNumber, payload.formData, controller=payload.controller
        )
        saved = QualityService._save(record)
        current_app.logger.info("QC record %s created (pending=%s)", saved["lotNumber"], saved["pendingSync"])
        return saved

    @staticmethod
    def get(record_id: str) -> Dict[str, Any]:
        return QualityService._load(record_id)

    @staticmethod
    def list_records(status: Optional[str] = None) -> List[Dict[str, Any]]:
        items = store().list()
        if status:
            items = [r for r in items if r.get("status") == status]
        return sorted(items, key=lambda r: r.get("createdAt") or "", reverse=True)

    @staticmethod
    def update(record_id: str, payload: QcUpdateModel) -> Dict[str, Any]:
        record = QualityService._load(record_id)
        QualityService._ensure_editable(record)

        if payload.lotNumber:
            record["lotNumber"] = payload.lotNumber
        if payload.controller is not None:
            record["controller"] = payload.controller
        if payload.status is not None:
            if payload.status.value not in (QcStatus.DRAFT.value, QcStatus.COMPLETED.value):
                raise ValidationFailed("status can only be set to draft or completed; use submit/review")
            record["status"] = payload.status.value
        if payload.formData:
            record["formData"] = {**(record.get("formData") or {}), **payload.formData}

        return QualityService._save(record, payload.baseVersion)

    @staticmethod
    def update_palette(record_id: str, index: int, values: Dict[str, str],
                       base_version: Optional[int] = None) -> Dict[str, Any]:
        if index < 0 or index >= MAX_PALETTES:
            raise ValidationFailed(f"palette index must be between 0 and {MAX_PALETTES - 1}")

        record = QualityService._load(record_id)
        QualityService._ensure_editable(record)

        form = dict(record.get("formData") or {})
        palettes = list(form.get("palettes") or [])
        while len(palettes) <= index:
            palettes.append(PaletteData().model_dump())
        palettes[index] = {**palettes[index], **values}
        form["palettes"] = palettes
        record["formData"] = form

        return QualityService._save(record, base_version)

    @staticmethod
    def duplicate(record_id: str, user_id: str) -> Dict[str, Any]:
        src = QualityService._load(record_id)
        copy = QualityService._new_record(
            user_id,
            f"{src.get('lotNumber', '')}-COPY",
            src.get("formData") or {},
            controller=src.get("controller"),
            sourceLotId=src.get("sourceLotId"),
            sourceLotNumber=src.get("sourceLotNumber"),
        )
        return QualityService._save(copy)

    @staticmethod
    def delete(record_id: str) -> Dict[str, Any]:
        record = QualityService._load(record_id)
        if not store().delete(record_id):
            raise NotFoundError(f"Quality record {record_id} not found")
        for path in record.get("imagePaths") or []:
            ObjectStorage.delete(path)
        return {"deleted": record_id}

    # -----------------------------
    # Review workflow
    # -----------------------------
    @staticmethod
    def submit(record_id: str, controller: Optional[str] = None) -> Dict[str, Any]:
        record = QualityService._load(record_id)
        QualityService._ensure_editable(record)

        record["status"] = QcStatus.SUBMITTED.value
        record["phase"] = QcPhase.CHIEF.value
        if controller:
            record["controller"] = controller
        record["chief"] = None
        record["chiefComments"] = None
        record["chiefApprovalDate"] = None
        return QualityService._save(record)

    @staticmethod
    def review(record_id: str, chief: str, approved: bool, comments: Optional[str] = None) -> Dict[str, Any]:
        record = QualityService._load(record_id)
        if record.get("status") != QcStatus.SUBMITTED.value:
            raise LotStateError(
                f"Quality record {record.get('lotNumber')} is {record.get('status')}, only submitted sheets can be reviewed"
            )

        record["chief"] = chief
        record["chiefComments"] = comments
        record["chiefApprovalDate"] = _now_iso()
        if approved:
            record["status"] = QcStatus.CHIEF_APPROVED.value
        else:
            # back to the controller for corrections
            record["status"] = QcStatus.CHIEF_REJECTED.value
            record["phase"] = QcPhase.CONTROLLER.value

        current_app.logger.info("QC record %s %s by %s", record.get("lotNumber"), record["status"], chief)
        return QualityService._save(record)

    # -----------------------------
    # Derived / bulk
    # -----------------------------
    @staticmethod
    def averages(record_id: str) -> Dict[str, float]:
        return palette_averages(QualityService._load(record_id))

    @staticmethod
    def sync_from_lots(user_id: str) -> List[Dict[str, Any]]:
        """
        Open one QC sheet per traceability lot that has none yet. Returns the
        sheets created.
        """
        existing = {r.get("sourceLotNumber") or r.get("lotNumber") for r in store().list()}
        created = []
        for lot in LotService.list_lots(user_id, scope="all"):
            lot_number = lot.get("lotNumber")
            if not lot_number or lot_number in existing:
                continue
            harvest = lot.get("harvest") or {}
            form = {
                "product": "Avocado",
                "variety": harvest.get("variety") or "",
                "clientLot": lot_number,
                "date": harvest.get("harvestDate") or (lot.get("createdAt") or "")[:10] or None,
            }
            record = QualityService._new_record(
                user_id,
                f"QL-{lot_number}",
                {k: v for k, v in form.items() if v is not None},
                id=f"quality-{lot['id']}",
                sourceLotId=lot["id"],
                sourceLotNumber=lot_number,
            )
            created.append(QualityService._save(record))
            existing.add(lot_number)

        current_app.logger.info("QC sync created %d record(s)", len(created))
        return created

    @staticmethod
    def sync_pending() -> Dict[str, List[str]]:
        return store().sync()

    # -----------------------------
    # Images
    # -----------------------------
    @staticmethod
    def add_image(record_id: str, file_storage) -> Dict[str, Any]:
        record = QualityService._load(record_id)
        stored = ObjectStorage.put(f"quality/{record_id}", file_storage)
        record["images"] = list(record.get("images") or []) + [stored["fileUrl"]]
        record["imagePaths"] = list(record.get("imagePaths") or []) + [stored["storagePath"]]
        try:
            return QualityService._save(record)
        except Exception:
            ObjectStorage.delete(stored["storagePath"])
            raise
