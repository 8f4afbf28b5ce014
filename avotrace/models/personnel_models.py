# avotrace/models/personnel_models.py
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class EmployeeStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    ON_LEAVE = "On Leave"
    FIRED = "Fired"
    RESIGNED = "Resigned"


class WorkStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    OVERTIME = "overtime"


class EmergencyContact(BaseModel):
    name: str = ""
    phone: str = ""
    relationship: str = ""


# -----------------------------
# EMPLOYEES
# -----------------------------
class EmployeeCreateModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    firstName: str = Field(min_length=1)
    lastName: str = Field(min_length=1)
    email: Optional[str] = None
    phoneNumber: str = ""
    address: Optional[str] = None
    position: str = "Operator"
    department: str = "Production"
    hireDate: Optional[str] = None
    fireDate: Optional[str] = None
    salary: float = Field(default=0, ge=0)
    hourlyRate: Optional[float] = Field(default=None, ge=0)
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    emergencyContact: EmergencyContact = Field(default_factory=EmergencyContact)
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v):
        return v.strip().lower() if v else v


class EmployeeUpdateModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phoneNumber: Optional[str] = None
    address: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    hireDate: Optional[str] = None
    fireDate: Optional[str] = None
    salary: Optional[float] = Field(default=None, ge=0)
    hourlyRate: Optional[float] = Field(default=None, ge=0)
    status: Optional[EmployeeStatus] = None
    emergencyContact: Optional[EmergencyContact] = None
    notes: Optional[str] = None


class TerminateModel(BaseModel):
    fireDate: Optional[str] = None
    reason: Optional[str] = None


# -----------------------------
# WORK SCHEDULES
# -----------------------------
def _check_time(v):
    if v in (None, ""):
        return ""
    if not _HHMM.match(v):
        raise ValueError("time must be HH:MM")
    return v


def check_day(v: str) -> str:
    if not _DAY.match(v or ""):
        raise ValueError("date must be YYYY-MM-DD")
    return v


def check_month(v: str) -> str:
    if not _MONTH.match(v or ""):
        raise ValueError("month must be YYYY-MM")
    return v


class ScheduleUpsertModel(BaseModel):
    """Partial day sheet; omitted fields keep their stored value."""
    model_config = ConfigDict(extra="ignore")

    employeeId: str
    date: str
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    pauseDuration: Optional[int] = Field(default=None, ge=0)
    machineCollapseDuration: Optional[int] = Field(default=None, ge=0)
    checked: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def _hhmm(cls, v):
        return None if v is None else _check_time(v)

    @field_validator("date")
    @classmethod
    def _day(cls, v):
        return check_day(v)
