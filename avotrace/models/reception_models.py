# avotrace/models/reception_models.py
"""
Reception-side tracking sheets. Each sheet kind has its own form (header,
measurement rows) but they share one record shape and one lifecycle:
draft -> in_progress -> completed, then archived.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_ROW_COUNT = 20


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class SheetStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class _Form(BaseModel):
    model_config = ConfigDict(extra="allow")


# -----------------------------
# INTAKE QUALITY CONTROL
# -----------------------------
class ControlHeader(_Form):
    ref: str = "SMQ.ENR.10"
    version: str = "01"
    date: str = "2023-07-01"
    deliveryDate: str = Field(default_factory=_today)
    productRange: str = "Avocat"
    provider: str = ""
    protocol: str = "1 Caisse (23KG) / 12palette"
    conventional: bool = True
    organic: bool = False
    deliveryNoteNumber: str = ""
    receptionNoteNumber: str = ""
    receptionTime: str = ""
    boxState: str = ""
    truckPlate: str = ""
    variety: str = ""
    producer: str = ""
    truckQuality: str = ""
    totalPallets: str = ""
    netWeight: str = ""
    productLotNumber: str = ""


class DefectCount(_Form):
    count: str = ""
    weight: str = ""
    percentage: str = ""


class ControlChecks(_Form):
    diseaseTraces: DefectCount = Field(default_factory=DefectCount)
    ripeFruit: DefectCount = Field(default_factory=DefectCount)
    dirtyFruit: DefectCount = Field(default_factory=DefectCount)
    sunBurns: DefectCount = Field(default_factory=DefectCount)
    withoutStem: DefectCount = Field(default_factory=DefectCount)


class ReceptionControlForm(_Form):
    header: ControlHeader = Field(default_factory=ControlHeader)
    qualityChecks: ControlChecks = Field(default_factory=ControlChecks)
    totalDefects: str = ""
    color: str = ""
    odor: str = ""
    decision: str = ""
    responsibleSignature: str = ""


# -----------------------------
# INTAKE FOLLOW-UP (weighing)
# -----------------------------
class IntakeHeader(_Form):
    date: str = Field(default_factory=_today)
    responsible: str = ""
    campaign: str = ""
    product: str = "AVOCAT"
    conventional: bool = True
    organic: bool = False
    deliveryNoteNumber: str = ""
    receptionNoteNumber: str = ""


class IntakeRow(_Form):
    palletNumber: str = ""
    boxCount: str = ""
    palletTare: str = ""
    grossWeight: str = ""
    netWeight: str = ""
    variety: str = ""
    internalLotNumber: str = ""
    decision: str = ""


class IntakeFooter(_Form):
    ticketWeight: str = ""
    factoryWeight: str = ""
    gap: str = ""


class IntakeForm(_Form):
    header: IntakeHeader = Field(default_factory=IntakeHeader)
    rows: List[IntakeRow] = Field(default_factory=lambda: [IntakeRow() for _ in range(DEFAULT_ROW_COUNT)])
    footer: IntakeFooter = Field(default_factory=IntakeFooter)


# -----------------------------
# WASTE
# -----------------------------
class WasteHeader(_Form):
    code: str = "F.S.D"
    date: str = "2023-09-18"
    version: str = "00"
    processingDate: str = Field(default_factory=_today)
    traceabilityManager: str = ""
    product: str = "AVOCAT"
    conventional: bool = True
    organic: bool = False


class WasteRow(_Form):
    palletNumber: str = ""
    boxCount: str = ""
    grossWeight: str = ""
    netWeight: str = ""
    wasteType: str = ""
    variety: str = ""


class WasteForm(_Form):
    header: WasteHeader = Field(default_factory=WasteHeader)
    rows: List[WasteRow] = Field(default_factory=lambda: [WasteRow() for _ in range(DEFAULT_ROW_COUNT)])


# -----------------------------
# PACKAGING SUPPLIES
# -----------------------------
class PackagingHeader(_Form):
    code: str = "SMQ.ENR07"
    version: str = "01"
    date: str = "2023-07-01"
    packagingManager: str = ""
    qualityManager: str = ""


class PackagingRow(_Form):
    packingDate: str = ""
    product: str = ""
    packagingType: str = ""
    lotNumber: str = ""
    quantity: str = ""
    supplier: str = ""


class PackagingForm(_Form):
    header: PackagingHeader = Field(default_factory=PackagingHeader)
    rows: List[PackagingRow] = Field(default_factory=lambda: [PackagingRow() for _ in range(DEFAULT_ROW_COUNT)])


class SheetKind(NamedTuple):
    name: str
    collection: str
    label: str
    form: Type[_Form]


SHEET_KINDS: Dict[str, SheetKind] = {
    k.name: k for k in (
        SheetKind(name="control", collection="reception_controls", label="Control", form=ReceptionControlForm),
        SheetKind(name="intake", collection="reception_sheets", label="Reception", form=IntakeForm),
        SheetKind(name="waste", collection="waste_sheets", label="Waste", form=WasteForm),
        SheetKind(name="packaging", collection="packaging_traces", label="Packaging", form=PackagingForm),
    )
}


# -----------------------------
# STORED RECORD
# -----------------------------
class SheetRecordModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    kind: str
    lotNumber: str
    status: SheetStatus = SheetStatus.DRAFT
    data: Dict[str, Any] = Field(default_factory=dict)
    archived: bool = False
    archivedAt: Optional[str] = None
    createdBy: Optional[str] = None
    version: int = 0
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


# -----------------------------
# REQUEST PAYLOADS
# -----------------------------
class SheetCreateModel(BaseModel):
    lotNumber: Optional[str] = None
    status: SheetStatus = SheetStatus.DRAFT
    data: Dict[str, Any] = Field(default_factory=dict)


class SheetUpdateModel(BaseModel):
    lotNumber: Optional[str] = None
    status: Optional[SheetStatus] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    baseVersion: Optional[int] = None


class SheetRenameModel(BaseModel):
    lotNumber: str = Field(min_length=1, max_length=120)

    @field_validator("lotNumber")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("lotNumber is required")
        return v
