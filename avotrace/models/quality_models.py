# avotrace/models/quality_models.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QcStatus(str, Enum):
    DRAFT = "draft"
    COMPLETED = "completed"
    SUBMITTED = "submitted"
    CHIEF_APPROVED = "chief_approved"
    CHIEF_REJECTED = "chief_rejected"


class QcPhase(str, Enum):
    CONTROLLER = "controller"
    CHIEF = "chief"


# statuses in which the controller may still edit the sheet
EDITABLE_STATUSES = (QcStatus.DRAFT.value, QcStatus.COMPLETED.value, QcStatus.CHIEF_REJECTED.value)

DEFAULT_PALETTE_COUNT = 5


# -----------------------------
# PALETTE MEASUREMENTS
# -----------------------------
class PaletteData(BaseModel):
    """
    One controlled palette. Values are kept as entered (strings); "C" means
    conforming, numbers are percentages, weights or counts.
    """
    model_config = ConfigDict(extra="allow")

    firmness: str = "0"
    rotting: str = "0"
    foreignMatter: str = "0"
    withered: str = "C"
    hardenedEndoderm: str = "0"
    parasitePresence: str = "0"
    parasiteAttack: str = "0"
    temperature: str = "C"
    odorOrTaste: str = "C"
    packageWeight: str = "0"
    shapeDefect: str = "0"
    colorDefect: str = "0"
    epidermisDefect: str = "0"
    homogeneity: str = "C"
    missingBrokenGrains: str = "0"
    size: str = "0"
    packageCount: str = ""
    packagingState: str = "C"
    labelingPresence: str = "C"
    corners: str = "C"
    horizontalStraps: str = "C"
    paletteSheet: str = "C"
    woodenPaletteState: str = "C"
    grossWeight: str = ""
    netWeight: str = ""
    internalLotNumber: str = ""
    paletteConformity: str = "C"
    requiredNetWeight: str = ""


# fields averaged across palettes on the summary
AVERAGED_FIELDS = (
    "firmness", "rotting", "foreignMatter", "hardenedEndoderm",
    "parasitePresence", "parasiteAttack", "packageWeight", "shapeDefect",
    "colorDefect", "epidermisDefect", "missingBrokenGrains", "size",
    "grossWeight", "netWeight",
)


def _default_palettes() -> List[PaletteData]:
    return [PaletteData() for _ in range(DEFAULT_PALETTE_COUNT)]


class QcFormData(BaseModel):
    model_config = ConfigDict(extra="allow")

    date: str = Field(default_factory=lambda: datetime.now(timezone.utc).date().isoformat())
    product: str = ""
    variety: str = ""
    campaign: str = "2024-2025"
    clientLot: str = ""
    shipmentNumber: str = ""
    packagingType: str = ""
    category: str = "I"
    exporterNumber: str = "106040"
    frequency: str = "1 Carton/palette"
    palettes: List[PaletteData] = Field(default_factory=_default_palettes)
    tolerance: Optional[Dict[str, Any]] = None


# -----------------------------
# STORED RECORD
# -----------------------------
class QcRecordModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    lotNumber: str
    formData: QcFormData = Field(default_factory=QcFormData)
    images: List[str] = Field(default_factory=list)
    imagePaths: List[str] = Field(default_factory=list)
    status: QcStatus = QcStatus.DRAFT
    phase: QcPhase = QcPhase.CONTROLLER

    controller: Optional[str] = None
    chief: Optional[str] = None
    chiefComments: Optional[str] = None
    chiefApprovalDate: Optional[str] = None

    sourceLotId: Optional[str] = None
    sourceLotNumber: Optional[str] = None

    createdBy: Optional[str] = None
    version: int = 0
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


# -----------------------------
# REQUEST PAYLOADS
# -----------------------------
class QcCreateModel(BaseModel):
    lotNumber: Optional[str] = None
    controller: Optional[str] = None
    formData: Dict[str, Any] = Field(default_factory=dict)


class QcUpdateModel(BaseModel):
    lotNumber: Optional[str] = None
    controller: Optional[str] = None
    status: Optional[QcStatus] = None
    formData: Dict[str, Any] = Field(default_factory=dict)
    baseVersion: Optional[int] = None


class QcPaletteUpdateModel(BaseModel):
    values: Dict[str, str]
    baseVersion: Optional[int] = None


class QcSubmitModel(BaseModel):
    controller: Optional[str] = None


class QcReviewModel(BaseModel):
    chief: str
    comments: Optional[str] = None
