# avotrace/models/lot_models.py
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from avotrace.models.stage_models import (
    DeliveryStage,
    ExportStage,
    HarvestStage,
    PackagingStage,
    SortingStage,
    STAGE_BY_KEY,
    StorageStage,
    TOTAL_STEPS,
    TransportStage,
)


class LotStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


FINAL_STATUSES = (LotStatus.COMPLETED.value, LotStatus.ARCHIVED.value)


# -----------------------------
# STORED LOT DOCUMENT
# -----------------------------
class LotModel(BaseModel):
    id: Optional[str] = None
    lotNumber: str
    status: LotStatus = LotStatus.DRAFT
    currentStep: int = Field(default=1, ge=1, le=TOTAL_STEPS)
    completedSteps: List[int] = Field(default_factory=list)

    assignedUsers: List[str] = Field(default_factory=list)
    globallyAccessible: bool = True
    createdBy: str = ""

    harvest: HarvestStage = Field(default_factory=HarvestStage)
    transport: TransportStage = Field(default_factory=TransportStage)
    sorting: SortingStage = Field(default_factory=SortingStage)
    packaging: PackagingStage = Field(default_factory=PackagingStage)
    storage: StorageStage = Field(default_factory=StorageStage)
    export: ExportStage = Field(default_factory=ExportStage)
    delivery: DeliveryStage = Field(default_factory=DeliveryStage)

    version: int = 0
    archiveId: Optional[str] = None

    createdAt: Optional[Any] = None
    updatedAt: Optional[Any] = None
    completedAt: Optional[Any] = None

    @field_validator("completedSteps")
    @classmethod
    def _step_set(cls, v: List[int]) -> List[int]:
        steps = sorted(set(int(s) for s in v))
        if any(s < 1 or s > TOTAL_STEPS for s in steps):
            raise ValueError(f"completed steps must be within 1..{TOTAL_STEPS}")
        return steps


# -----------------------------
# REQUEST PAYLOADS
# -----------------------------
def _check_stage_keys(v: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    unknown = [k for k in v if k not in STAGE_BY_KEY]
    if unknown:
        raise ValueError(f"unknown stage(s): {', '.join(unknown)}")
    return v


class LotCreateModel(BaseModel):
    lotNumber: Optional[str] = None
    globallyAccessible: bool = True
    assignedUsers: List[str] = Field(default_factory=list)

    # optional initial stage data, keyed by stage ("harvest", "transport", ...)
    stages: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @field_validator("stages")
    @classmethod
    def _known_stages(cls, v):
        return _check_stage_keys(v)


class LotDraftUpdateModel(BaseModel):
    stages: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    globallyAccessible: Optional[bool] = None
    baseVersion: Optional[int] = None

    @field_validator("stages")
    @classmethod
    def _known_stages(cls, v):
        return _check_stage_keys(v)


class StepAdvanceModel(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)
    baseVersion: Optional[int] = None


class LotArchiveModel(BaseModel):
    deleteOriginal: Optional[bool] = None
