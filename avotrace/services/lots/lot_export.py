# avotrace/services/lots/lot_export.py

import csv
import io
from typing import Any, Dict, Iterable, List, Tuple

from avotrace.models.stage_models import TOTAL_STEPS
from avotrace.services.lots.step_validator import completion_percentage
from avotrace.services.reports.pdf_layout import PAGE_SIZE, MARGIN, PdfPage, render_pdf

# (header, stage key or None for top-level, field)
CSV_COLUMNS: List[Tuple[str, Any, str]] = [
    ("Lot Number", None, "lotNumber"),
    ("Status", None, "status"),
    ("Progress (%)", None, "progress"),
    ("Harvest Date", "harvest", "harvestDate"),
    ("Farm Location", "harvest", "farmLocation"),
    ("Farmer ID", "harvest", "farmerId"),
    ("Variety", "harvest", "variety"),
    ("Transport Company", "transport", "transportCompany"),
    ("Driver", "transport", "driverName"),
    ("Vehicle", "transport", "vehicleId"),
    ("Transport Temperature", "transport", "temperature"),
    ("Sorting Date", "sorting", "sortingDate"),
    ("Quality Grade", "sorting", "qualityGrade"),
    ("Rejected Count", "sorting", "rejectedCount"),
    ("Packaging Date", "packaging", "packagingDate"),
    ("Box ID", "packaging", "boxId"),
    ("Net Weight", "packaging", "netWeight"),
    ("Avocado Count", "packaging", "avocadoCount"),
    ("Storage Entry Date", "storage", "entryDate"),
    ("Storage Room", "storage", "storageRoomId"),
    ("Warehouse", "storage", "warehouseId"),
    ("Loading Date", "export", "loadingDate"),
    ("Container ID", "export", "containerId"),
    ("Destination", "export", "destination"),
    ("Estimated Delivery", "delivery", "estimatedDeliveryDate"),
    ("Actual Delivery", "delivery", "actualDeliveryDate"),
    ("Client Name", "delivery", "clientName"),
    ("Client Location", "delivery", "clientLocation"),
    ("Updated At", None, "updatedAt"),
]

CSV_HEADER = [c[0] for c in CSV_COLUMNS]


def _cell(lot: Dict[str, Any], section, field: str):
    if field == "progress" and section is None:
        return completion_percentage(lot.get("completedSteps") or [])
    src = lot if section is None else (lot.get(section) or {})
    value = src.get(field)
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return "" if value is None else value


def lots_to_csv(lots: Iterable[Dict[str, Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for lot in lots:
        writer.writerow([_cell(lot, section, field) for _, section, field in CSV_COLUMNS])
    return buf.getvalue()


def _stage_rows(lot: Dict[str, Any], key: str, labels: List[Tuple[str, str]]):
    section = lot.get(key) or {}
    rows = []
    for label, field in labels:
        value = section.get(field)
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        rows.append((label, value))
    return rows


def lot_report_pdf(lot: Dict[str, Any]) -> bytes:
    page = PdfPage()
    pct = completion_percentage(lot.get("completedSteps") or [])
    y = page.header(
        f"Lot {lot.get('lotNumber', '')}",
        f"Status: {lot.get('status', '')}  |  Progress: {pct}%  |  Steps {len(lot.get('completedSteps') or [])}/{TOTAL_STEPS}",
    )

    # progress bar
    bar_w = PAGE_SIZE[0] - 2 * MARGIN
    page.rect(MARGIN, y, bar_w, 24, outline="#9ab39f")
    if pct:
        page.rect(MARGIN, y, int(bar_w * pct / 100), 24, fill="#3c8d50", outline="#3c8d50")
    y += 44

    y = page.section(y, "1. Harvest", _stage_rows(lot, "harvest", [
        ("Harvest date", "harvestDate"), ("Farm", "farmLocation"),
        ("Farmer", "farmerId"), ("Variety", "variety"),
    ]))
    y = page.section(y, "2. Transport", _stage_rows(lot, "transport", [
        ("Company", "transportCompany"), ("Driver", "driverName"),
        ("Vehicle", "vehicleId"), ("Temperature", "temperature"),
    ]))
    y = page.section(y, "3. Sorting", _stage_rows(lot, "sorting", [
        ("Sorting date", "sortingDate"), ("Quality grade", "qualityGrade"),
        ("Rejected", "rejectedCount"),
    ]))
    y = page.section(y, "4. Packaging", _stage_rows(lot, "packaging", [
        ("Packaging date", "packagingDate"), ("Box", "boxId"),
        ("Net weight", "netWeight"), ("Calibers", "calibers"),
    ]))
    y = page.section(y, "5. Storage", _stage_rows(lot, "storage", [
        ("Entry date", "entryDate"), ("Warehouse", "warehouseId"),
        ("Room", "storageRoomId"),
    ]))
    y = page.section(y, "6. Export", _stage_rows(lot, "export", [
        ("Loading date", "loadingDate"), ("Container", "containerId"),
        ("Destination", "destination"),
    ]))
    page.section(y, "7. Delivery", _stage_rows(lot, "delivery", [
        ("Estimated", "estimatedDeliveryDate"), ("Delivered", "actualDeliveryDate"),
        ("Client", "clientName"),
    ]))
    return render_pdf([page])
