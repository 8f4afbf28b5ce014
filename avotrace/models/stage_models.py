# avotrace/models/stage_models.py
"""
One record class per handling stage of a lot.

Each class carries its position in the workflow (`step`), the key it is
stored under on the lot document (`key`) and the fields that must be
non-empty for the step to count as done (`required_fields`).
"""
from typing import ClassVar, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field


class StageRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    step: ClassVar[int]
    key: ClassVar[str]
    required_fields: ClassVar[Tuple[str, ...]]


# -----------------------------
# 1) HARVEST
# -----------------------------
class HarvestStage(StageRecord):
    step: ClassVar[int] = 1
    key: ClassVar[str] = "harvest"
    required_fields: ClassVar[Tuple[str, ...]] = ("harvestDate", "farmerId", "lotNumber")

    harvestDate: str = ""
    farmLocation: str = ""
    farmerId: str = ""
    lotNumber: str = ""
    variety: str = "hass"
    avocadoType: str = ""


# -----------------------------
# 2) TRANSPORT
# -----------------------------
class TransportStage(StageRecord):
    step: ClassVar[int] = 2
    key: ClassVar[str] = "transport"
    required_fields: ClassVar[Tuple[str, ...]] = ("transportCompany", "driverName")

    transportCompany: str = ""
    driverName: str = ""
    vehicleId: str = ""
    departureDateTime: str = ""
    arrivalDateTime: str = ""
    temperature: Optional[float] = 0


# -----------------------------
# 3) SORTING
# -----------------------------
class SortingStage(StageRecord):
    step: ClassVar[int] = 3
    key: ClassVar[str] = "sorting"
    required_fields: ClassVar[Tuple[str, ...]] = ("sortingDate", "qualityGrade")

    sortingDate: str = ""
    qualityGrade: str = "A"
    rejectedCount: Optional[int] = 0
    notes: str = ""


# -----------------------------
# 4) PACKAGING
# -----------------------------
class PackagingStage(StageRecord):
    step: ClassVar[int] = 4
    key: ClassVar[str] = "packaging"
    required_fields: ClassVar[Tuple[str, ...]] = ("packagingDate", "boxId")

    packagingDate: str = ""
    boxId: str = ""
    workerIds: List[str] = Field(default_factory=list)
    netWeight: Optional[float] = 0
    avocadoCount: Optional[int] = 0
    boxType: str = "case"
    boxTypes: List[str] = Field(default_factory=list)
    calibers: List[str] = Field(default_factory=list)
    boxWeights: List[str] = Field(default_factory=list)
    paletteNumbers: List[str] = Field(default_factory=list)


# -----------------------------
# 5) STORAGE
# -----------------------------
class StorageStage(StageRecord):
    step: ClassVar[int] = 5
    key: ClassVar[str] = "storage"
    required_fields: ClassVar[Tuple[str, ...]] = ("entryDate", "storageRoomId", "warehouseId")

    boxId: str = ""
    entryDate: str = ""
    storageTemperature: Optional[float] = 0
    storageRoomId: str = ""
    warehouseId: str = ""
    warehouseName: str = ""
    exitDate: str = ""


# -----------------------------
# 6) EXPORT
# -----------------------------
class ExportStage(StageRecord):
    step: ClassVar[int] = 6
    key: ClassVar[str] = "export"
    required_fields: ClassVar[Tuple[str, ...]] = ("loadingDate", "containerId")

    boxId: str = ""
    loadingDate: str = ""
    containerId: str = ""
    driverName: str = ""
    vehicleId: str = ""
    destination: str = ""


# -----------------------------
# 7) DELIVERY
# -----------------------------
class DeliveryStage(StageRecord):
    step: ClassVar[int] = 7
    key: ClassVar[str] = "delivery"
    required_fields: ClassVar[Tuple[str, ...]] = ("estimatedDeliveryDate", "clientName")

    boxId: str = ""
    estimatedDeliveryDate: str = ""
    actualDeliveryDate: str = ""
    clientName: str = ""
    clientLocation: str = ""
    notes: str = ""


STAGES: Tuple[Type[StageRecord], ...] = (
    HarvestStage,
    TransportStage,
    SortingStage,
    PackagingStage,
    StorageStage,
    ExportStage,
    DeliveryStage,
)

TOTAL_STEPS = len(STAGES)

STAGE_BY_STEP: Dict[int, Type[StageRecord]] = {s.step: s for s in STAGES}
STAGE_BY_KEY: Dict[str, Type[StageRecord]] = {s.key: s for s in STAGES}


def stage_for_step(step: int) -> Type[StageRecord]:
    try:
        return STAGE_BY_STEP[step]
    except KeyError:
        raise ValueError(f"Unknown step {step!r}; expected 1..{TOTAL_STEPS}") from None
