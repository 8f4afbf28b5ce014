# avotrace/services/personnel/personnel_service.py
from __future__ import annotations

import csv
import io
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import current_app

from avotrace.errors import NotFoundError
from avotrace.models.personnel_models import (
    EmployeeCreateModel,
    EmployeeStatus,
    EmployeeUpdateModel,
)
from avotrace.mongo_safe import require_col
from avotrace.services.serialization import parse_object_id, public_doc

PERSONNEL = "personnel"

EMPLOYEE_CSV_HEADER = [
    "ID", "First Name", "Last Name", "Email", "Position", "Department",
    "Phone Number", "Address", "Hire Date", "Fire Date", "Status", "Salary",
    "Hourly Rate", "Emergency Contact Name", "Emergency Contact Phone",
    "Emergency Contact Relationship", "Notes",
]


def full_name(employee: Dict[str, Any]) -> str:
    return f"{employee.get('firstName', '')} {employee.get('lastName', '')}".strip()


class PersonnelService:

    @staticmethod
    def _oid(employee_id: str):
        oid = parse_object_id(employee_id)
        if oid is None:
            raise NotFoundError(f"Employee {employee_id} not found")
        return oid

    @staticmethod
    def create(payload: EmployeeCreateModel) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        doc = payload.model_dump(mode="json")
        doc.update({"createdAt": now, "updatedAt": now})
        res = require_col(PERSONNEL).insert_one(doc)
        doc["_id"] = res.inserted_id
        current_app.logger.info("Employee %s added (%s)", full_name(doc), doc["department"])
        return public_doc(doc)

    @staticmethod
    def get(employee_id: str) -> Dict[str, Any]:
        doc = require_col(PERSONNEL).find_one({"_id": PersonnelService._oid(employee_id)})
        if not doc:
            raise NotFoundError(f"Employee {employee_id} not found")
        return public_doc(doc)

    @staticmethod
    def list_employees(
        search: Optional[str] = None,
        department: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        q: Dict[str, Any] = {}
        if department:
            q["department"] = department
        if status:
            q["status"] = status
        if search:
            rx = {"$regex": re.escape(search.strip()), "$options": "i"}
            q["$or"] = [
                {"firstName": rx},
                {"lastName": rx},
                {"position": rx},
                {"email": rx},
                {"phoneNumber": rx},
            ]

        cur = require_col(PERSONNEL).find(q).sort([("lastName", 1), ("firstName", 1)])
        return [public_doc(d) for d in cur]

    @staticmethod
    def update(employee_id: str, payload: EmployeeUpdateModel) -> Dict[str, Any]:
        patch = payload.model_dump(mode="json", exclude_none=True)
        patch["updatedAt"] = datetime.now(timezone.utc)
        res = require_col(PERSONNEL).update_one(
            {"_id": PersonnelService._oid(employee_id)}, {"$set": patch}
        )
        if res.matched_count == 0:
            raise NotFoundError(f"Employee {employee_id} not found")
        return PersonnelService.get(employee_id)

    @staticmethod
    def terminate(employee_id: str, fire_date: Optional[str] = None, reason: Optional[str] = None) -> Dict[str, Any]:
        patch: Dict[str, Any] = {
            "status": EmployeeStatus.INACTIVE.value,
            "fireDate": fire_date or datetime.now(timezone.utc).date().isoformat(),
            "updatedAt": datetime.now(timezone.utc),
        }
        if reason:
            patch["terminationReason"] = reason
        res = require_col(PERSONNEL).update_one(
            {"_id": PersonnelService._oid(employee_id)}, {"$set": patch}
        )
        if res.matched_count == 0:
            raise NotFoundError(f"Employee {employee_id} not found")
        current_app.logger.info("Employee %s terminated on %s", employee_id, patch["fireDate"])
        return PersonnelService.get(employee_id)

    @staticmethod
    def delete(employee_id: str) -> Dict[str, Any]:
        res = require_col(PERSONNEL).delete_one({"_id": PersonnelService._oid(employee_id)})
        if res.deleted_count == 0:
            raise NotFoundError(f"Employee {employee_id} not found")
        return {"deleted": employee_id}

    @staticmethod
    def departments() -> List[str]:
        return sorted(d for d in require_col(PERSONNEL).distinct("department") if d)

    @staticmethod
    def to_csv(employees: List[Dict[str, Any]]) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(EMPLOYEE_CSV_HEADER)
        for e in employees:
            contact = e.get("emergencyContact") or {}
            writer.writerow([
                e.get("id", ""), e.get("firstName", ""), e.get("lastName", ""),
                e.get("email") or "", e.get("position", ""), e.get("department", ""),
                e.get("phoneNumber", ""), e.get("address") or "", e.get("hireDate") or "",
                e.get("fireDate") or "", e.get("status", ""), e.get("salary", 0),
                e.get("hourlyRate") if e.get("hourlyRate") is not None else "",
                contact.get("name", ""), contact.get("phone", ""),
                contact.get("relationship", ""), e.get("notes") or "",
            ])
        return buf.getvalue()
