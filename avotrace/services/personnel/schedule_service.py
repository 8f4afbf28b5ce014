# avotrace/services/personnel/schedule_service.py
from __future__ import annotations

import csv
import io
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app

from avotrace.errors import ValidationFailed
from avotrace.models.personnel_models import EmployeeStatus, ScheduleUpsertModel, WorkStatus
from avotrace.mongo_safe import require_col
from avotrace.services.personnel.personnel_service import PersonnelService, full_name
from avotrace.services.serialization import public_doc

WORK_SCHEDULES = "work_schedules"

FULL_DAY_HOURS = 8
MIN_PRESENT_HOURS = 6
MINUTES_PER_DAY = 24 * 60


def _minutes(hhmm: str) -> int:
    h, m = hhmm.split(":")
    return int(h) * 60 + int(m)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_hours_and_salary(
    start_time: str,
    end_time: str,
    hourly_rate: float,
    pause_minutes: int = 0,
    breakdown_minutes: int = 0,
) -> Tuple[float, int]:
    """
    Hours between two HH:MM times minus pause and machine breakdown.
    An end before the start means the shift ran past midnight.
    Salary is rounded to the whole currency unit.
    """
    if not start_time or not end_time:
        return 0.0, 0

    worked = (_minutes(end_time) - _minutes(start_time)) % MINUTES_PER_DAY
    worked -= (pause_minutes or 0) + (breakdown_minutes or 0)
    worked = max(worked, 0)

    hours = worked / 60
    return round(hours, 2), round_half_up(hours * hourly_rate)


def work_status(hours: float, has_times: bool = True) -> str:
    if not has_times:
        return WorkStatus.ABSENT.value
    if hours >= FULL_DAY_HOURS:
        return WorkStatus.OVERTIME.value
    if hours >= MIN_PRESENT_HOURS:
        return WorkStatus.PRESENT.value
    return WorkStatus.LATE.value


def _sum(rows, key) -> float:
    return sum(float(r.get(key) or 0) for r in rows)


class ScheduleService:
    """
    One work sheet per employee per day in `work_schedules`, keyed by
    (employeeId, date). Hours, salary and status are derived on every write.
    """

    @staticmethod
    def _rate(employee: Dict[str, Any]) -> float:
        return float(employee.get("hourlyRate") or current_app.config["DEFAULT_HOURLY_RATE"])

    @staticmethod
    def upsert(payload: ScheduleUpsertModel) -> Dict[str, Any]:
        employee = PersonnelService.get(payload.employeeId)
        col = require_col(WORK_SCHEDULES)
        key = {"employeeId": payload.employeeId, "date": payload.date}

        existing = col.find_one(key) or {}
        sheet = {
            "startTime": "",
            "endTime": "",
            "pauseDuration": 0,
            "machineCollapseDuration": 0,
            "checked": False,
            "notes": "",
        }
        sheet.update({k: existing[k] for k in sheet if k in existing})
        sheet.update(payload.model_dump(exclude_none=True, exclude={"employeeId", "date"}))

        has_times = bool(sheet["startTime"] and sheet["endTime"])
        if sheet["checked"] and not has_times:
            raise ValidationFailed("Fill in both start and end times before checking in")

        hours, salary = compute_hours_and_salary(
            sheet["startTime"],
            sheet["endTime"],
            ScheduleService._rate(employee),
            sheet["pauseDuration"],
            sheet["machineCollapseDuration"],
        )
        now = datetime.now(timezone.utc)
        sheet.update({
            "hoursWorked": hours,
            "salary": salary,
            "status": work_status(hours, has_times),
            "updatedAt": now,
        })

        col.update_one(key, {"$set": sheet, "$setOnInsert": {"createdAt": now}}, upsert=True)
        current_app.logger.info(
            "Schedule %s %s saved: %sh, %s %s",
            payload.employeeId, payload.date, hours, salary, current_app.config["CURRENCY"],
        )
        return public_doc(col.find_one(key))

    @staticmethod
    def for_date(day: str) -> List[Dict[str, Any]]:
        return [public_doc(d) for d in require_col(WORK_SCHEDULES).find({"date": day})]

    @staticmethod
    def in_range(start: str, end: str, checked_only: bool = False) -> List[Dict[str, Any]]:
        q: Dict[str, Any] = {"date": {"$gte": start, "$lte": end}}
        if checked_only:
            q["checked"] = True
        cur = require_col(WORK_SCHEDULES).find(q).sort("date", -1)
        return [public_doc(d) for d in cur]

    # -----------------------------
    # Daily dashboard
    # -----------------------------
    @staticmethod
    def daily_stats(day: str) -> Dict[str, Any]:
        employees = PersonnelService.list_employees(status=EmployeeStatus.ACTIVE.value)
        schedules = ScheduleService.for_date(day)
        present = [s for s in schedules if s.get("checked")]

        total = len(employees)
        total_salary = _sum(present, "salary")
        return {
            "date": day,
            "totalEmployees": total,
            "presentEmployees": len(present),
            "absentEmployees": max(total - len(present), 0),
            "overtimeEmployees": sum(1 for s in present if float(s.get("hoursWorked") or 0) >= FULL_DAY_HOURS),
            "attendanceRate": round(len(present) / total * 100) if total else 0,
            "totalHours": round(_sum(present, "hoursWorked"), 2),
            "overtimeHours": round(sum(max(0.0, float(s.get("hoursWorked") or 0) - FULL_DAY_HOURS) for s in present), 2),
            "totalSalary": total_salary,
            "averageSalary": round(total_salary / len(present)) if present else 0,
        }

    # -----------------------------
    # Work-hours history
    # -----------------------------
    @staticmethod
    def history(start: str, end: str, search: Optional[str] = None,
                department: Optional[str] = None) -> Dict[str, Any]:
        employees = PersonnelService.list_employees(search=search, department=department)
        schedules = ScheduleService.in_range(start, end)

        by_employee: Dict[str, List[Dict[str, Any]]] = {}
        for s in schedules:
            by_employee.setdefault(s.get("employeeId"), []).append(s)

        summaries = []
        for emp in employees:
            rows = by_employee.get(emp["id"], [])
            total_hours = _sum(rows, "hoursWorked")
            days = len(rows)
            summaries.append({
                "employeeId": emp["id"],
                "employee": emp,
                "totalHours": round(total_hours, 2),
                "totalSalary": _sum(rows, "salary"),
                "workDays": days,
                "averageHoursPerDay": round(total_hours / days, 2) if days else 0,
                "overtimeHours": round(sum(max(0.0, float(r.get("hoursWorked") or 0) - FULL_DAY_HOURS) for r in rows), 2),
                # rows are sorted newest first
                "lastWorked": rows[0]["date"] if rows else "Never",
                "schedules": rows,
            })

        active = [s for s in summaries if s["workDays"]]
        total_hours = sum(s["totalHours"] for s in summaries)
        return {
            "start": start,
            "end": end,
            "summaries": summaries,
            "overall": {
                "totalEmployees": len(summaries),
                "activeEmployees": len(active),
                "totalHours": round(total_hours, 2),
                "totalSalary": sum(s["totalSalary"] for s in summaries),
                "totalOvertimeHours": round(sum(s["overtimeHours"] for s in summaries), 2),
                "averageHoursPerEmployee": round(total_hours / len(active), 2) if active else 0,
            },
        }

    @staticmethod
    def history_summary_csv(history: Dict[str, Any]) -> str:
        currency = current_app.config["CURRENCY"]
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow([
            "Employee", "Department", "Position", "Total Hours", "Work Days",
            "Avg Hours/Day", "Overtime Hours", f"Total Salary ({currency})", "Last Worked",
        ])
        for s in history["summaries"]:
            emp = s["employee"]
            writer.writerow([
                full_name(emp), emp.get("department", ""), emp.get("position", ""),
                s["totalHours"], s["workDays"], s["averageHoursPerDay"],
                s["overtimeHours"], s["totalSalary"], s["lastWorked"],
            ])
        return buf.getvalue()

    @staticmethod
    def history_detailed_csv(history: Dict[str, Any]) -> str:
        currency = current_app.config["CURRENCY"]
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow([
            "Employee", "Department", "Position", "Date", "Entry Time", "Exit Time",
            "Pause (min)", "Machine Breakdown (min)", "Hours Worked",
            f"Salary ({currency})", "Status", "Notes",
        ])
        for s in history["summaries"]:
            emp = s["employee"]
            for r in s["schedules"]:
                writer.writerow([
                    full_name(emp), emp.get("department", ""), emp.get("position", ""),
                    r.get("date", ""), r.get("startTime", ""), r.get("endTime", ""),
                    r.get("pauseDuration") or 0, r.get("machineCollapseDuration") or 0,
                    r.get("hoursWorked", 0), r.get("salary", 0), r.get("status", ""),
                    r.get("notes") or "",
                ])
        return buf.getvalue()
