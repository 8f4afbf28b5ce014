# avotrace/services/reception/reception_service.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import current_app

from avotrace.errors import LotStateError, NotFoundError, VersionConflictError
from avotrace.models.reception_models import (
    SHEET_KINDS,
    SheetCreateModel,
    SheetKind,
    SheetRecordModel,
    SheetStatus,
    SheetUpdateModel,
)
from avotrace.services.cache.local_store import TwoTierStore


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _num(value: Any) -> Optional[float]:
    """Sheet cells are free text; "12,5" and "12.5" both read as 12.5."""
    try:
        return float(str(value).strip().replace(",", "."))
    except (TypeError, ValueError):
        return None


def _sum(rows: List[Dict[str, Any]], field: str) -> float:
    return round(sum(_num(r.get(field)) or 0.0 for r in rows), 2)


def _merge(current: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(current)
    for key, value in (patch or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def sheet_totals(kind: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Footer figures shown under each sheet kind."""
    rows = [r for r in (data.get("rows") or []) if isinstance(r, dict)]

    if kind == "control":
        checks = data.get("qualityChecks") or {}
        defects = [c for c in checks.values() if isinstance(c, dict)]
        return {
            "defectCount": _sum(defects, "count"),
            "defectWeight": _sum(defects, "weight"),
            "defectPercentage": _sum(defects, "percentage"),
        }

    if kind == "packaging":
        by_type: Dict[str, float] = {}
        for r in rows:
            qty = _num(r.get("quantity"))
            if qty is not None and r.get("packagingType"):
                by_type[r["packagingType"]] = round(by_type.get(r["packagingType"], 0.0) + qty, 2)
        return {
            "totalQuantity": _sum(rows, "quantity"),
            "byPackagingType": by_type,
            "suppliers": sorted({r["supplier"] for r in rows if r.get("supplier")}),
        }

    out: Dict[str, Any] = {
        "pallets": sum(1 for r in rows if str(r.get("palletNumber") or "").strip()),
        "boxes": _sum(rows, "boxCount"),
        "grossWeight": _sum(rows, "grossWeight"),
        "netWeight": _sum(rows, "netWeight"),
    }
    if kind == "waste":
        by_type: Dict[str, float] = {}
        for r in rows:
            net = _num(r.get("netWeight"))
            if net is not None and r.get("wasteType"):
                by_type[r["wasteType"]] = round(by_type.get(r["wasteType"], 0.0) + net, 2)
        out["netWeightByWasteType"] = by_type
    elif kind == "intake":
        footer = data.get("footer") or {}
        ticket, factory = _num(footer.get("ticketWeight")), _num(footer.get("factoryWeight"))
        out["weightGap"] = round(ticket - factory, 2) if ticket is not None and factory is not None else None
    return out


class ReceptionService:
    """
    Reception tracking sheets (intake control, intake weighing, waste,
    packaging supplies). All kinds share the record shape and lifecycle and
    persist through the two-tier store, one collection per kind.
    """

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def kind(name: str) -> SheetKind:
        try:
            return SHEET_KINDS[name]
        except KeyError:
            raise NotFoundError(f"Unknown sheet kind {name!r}") from None

    @staticmethod
    def store(kind: SheetKind) -> TwoTierStore:
        return TwoTierStore(kind.collection, kind.collection)

    @staticmethod
    def _load(kind: SheetKind, sheet_id: str) -> Dict[str, Any]:
        record = ReceptionService.store(kind).get(sheet_id)
        if not record:
            raise NotFoundError(f"{kind.label} sheet {sheet_id} not found")
        return record

    @staticmethod
    def _save(kind: SheetKind, record: Dict[str, Any], base_version: Optional[int] = None) -> Dict[str, Any]:
        stored = int(record.get("version") or 0)
        if base_version is not None and int(base_version) != stored:
            raise VersionConflictError(record["id"], int(base_version), stored)

        record = {**record, "data": kind.form.model_validate(record.get("data") or {}).model_dump(mode="json")}
        validated = SheetRecordModel.model_validate(record).model_dump(mode="json")
        validated["version"] = stored + 1
        validated["updatedAt"] = _now_iso()
        return ReceptionService.store(kind).save(validated)

    @staticmethod
    def _ensure_open(kind: SheetKind, record: Dict[str, Any]) -> None:
        if record.get("archived"):
            raise LotStateError(f"{kind.label} sheet {record.get('lotNumber')} is archived")

    # -----------------------------
    # CRUD
    # -----------------------------
    @staticmethod
    def create(kind_name: str, user_id: str, payload: SheetCreateModel) -> Dict[str, Any]:
        kind = ReceptionService.kind(kind_name)
        lot_number = (payload.lotNumber or "").strip()
        if not lot_number:
            open_count = sum(1 for r in ReceptionService.store(kind).list() if not r.get("archived"))
            lot_number = f"{kind.label} {open_count + 1}"

        now = _now_iso()
        record = {
            "id": uuid.uuid4().hex,
            "kind": kind.name,
            "lotNumber": lot_number,
            "status": payload.status.value,
            "data": payload.data,
            "archived": False,
            "createdBy": user_id,
            "version": 0,
            "createdAt": now,
            "updatedAt": now,
        }
        saved = ReceptionService._save(kind, record)
        current_app.logger.info("%s sheet %s created (pending=%s)", kind.label, lot_number, saved["pendingSync"])
        return saved

    @staticmethod
    def get(kind_name: str, sheet_id: str) -> Dict[str, Any]:
        return ReceptionService._load(ReceptionService.kind(kind_name), sheet_id)

    @staticmethod
    def list_sheets(kind_name: str, archived: Optional[bool] = False) -> List[Dict[str, Any]]:
        """archived=None lists every sheet of the kind."""
        kind = ReceptionService.kind(kind_name)
        items = ReceptionService.store(kind).list()
        if archived is not None:
            items = [r for r in items if bool(r.get("archived")) == archived]
        if archived:
            return sorted(items, key=lambda r: r.get("archivedAt") or r.get("updatedAt") or "", reverse=True)
        return sorted(items, key=lambda r: r.get("updatedAt") or "", reverse=True)

    @staticmethod
    def update(kind_name: str, sheet_id: str, payload: SheetUpdateModel) -> Dict[str, Any]:
        kind = ReceptionService.kind(kind_name)
        record = ReceptionService._load(kind, sheet_id)
        ReceptionService._ensure_open(kind, record)

        if payload.lotNumber and payload.lotNumber.strip():
            record["lotNumber"] = payload.lotNumber.strip()
        if payload.status is not None:
            record["status"] = payload.status.value
        if payload.data:
            record["data"] = _merge(record.get("data") or {}, payload.data)
        return ReceptionService._save(kind, record, payload.baseVersion)

    @staticmethod
    def rename(kind_name: str, sheet_id: str, lot_number: str) -> Dict[str, Any]:
        """Archived sheets can still be renamed."""
        kind = ReceptionService.kind(kind_name)
        record = ReceptionService._load(kind, sheet_id)
        record["lotNumber"] = lot_number
        return ReceptionService._save(kind, record)

    @staticmethod
    def duplicate(kind_name: str, sheet_id: str, user_id: str) -> Dict[str, Any]:
        kind = ReceptionService.kind(kind_name)
        src = ReceptionService._load(kind, sheet_id)
        return ReceptionService.create(
            kind.name,
            user_id,
            SheetCreateModel(lotNumber=f"{src.get('lotNumber')}-COPY", data=src.get("data") or {}),
        )

    @staticmethod
    def archive(kind_name: str, sheet_id: str) -> Dict[str, Any]:
        kind = ReceptionService.kind(kind_name)
        record = ReceptionService._load(kind, sheet_id)
        if record.get("archived"):
            return record

        record["archived"] = True
        record["archivedAt"] = _now_iso()
        record["status"] = SheetStatus.COMPLETED.value
        saved = ReceptionService._save(kind, record)
        current_app.logger.info("%s sheet %s archived", kind.label, saved.get("lotNumber"))
        return saved

    @staticmethod
    def delete(kind_name: str, sheet_id: str) -> Dict[str, Any]:
        kind = ReceptionService.kind(kind_name)
        ReceptionService._load(kind, sheet_id)
        if not ReceptionService.store(kind).delete(sheet_id):
            raise NotFoundError(f"{kind.label} sheet {sheet_id} not found")
        return {"deleted": sheet_id}

    # -----------------------------
    # Derived / sync
    # -----------------------------
    @staticmethod
    def totals(kind_name: str, sheet_id: str) -> Dict[str, Any]:
        kind = ReceptionService.kind(kind_name)
        return sheet_totals(kind.name, ReceptionService._load(kind, sheet_id).get("data") or {})

    @staticmethod
    def sync_pending(kind_name: str) -> Dict[str, List[str]]:
        return ReceptionService.store(ReceptionService.kind(kind_name)).sync()
