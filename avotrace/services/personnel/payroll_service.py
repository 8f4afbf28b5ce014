# avotrace/services/personnel/payroll_service.py
from __future__ import annotations

import calendar
import csv
import io
from typing import Any, Dict, List, Optional

from flask import current_app

from avotrace.services.personnel.personnel_service import PersonnelService, full_name
from avotrace.services.personnel.schedule_service import FULL_DAY_HOURS, ScheduleService
from avotrace.services.reports.pdf_layout import MARGIN, PAGE_SIZE, PdfPage, render_pdf

# deductions
SOCIAL_SECURITY_RATE = 0.096
TAX_RATE = 0.10
TAX_THRESHOLD = 2500
INSURANCE_RATE = 0.015

# bonuses
OVERTIME_MULTIPLIER = 1.5
PERFORMANCE_BONUS = 200
PERFORMANCE_MIN_DAYS = 20
TRANSPORT_PER_DAY = 10


def month_bounds(month: str):
    """'2025-03' -> ('2025-03-01', '2025-03-31')"""
    year, mon = (int(p) for p in month.split("-"))
    last = calendar.monthrange(year, mon)[1]
    return f"{month}-01", f"{month}-{last:02d}"


def compute_payroll(employee: Dict[str, Any], schedules: List[Dict[str, Any]],
                    default_rate: float) -> Dict[str, Any]:
    """Payslip figures for one employee from their checked day sheets."""
    rate = float(employee.get("hourlyRate") or default_rate)
    total_hours = sum(float(s.get("hoursWorked") or 0) for s in schedules)
    total_days = len(schedules)
    gross = sum(float(s.get("salary") or 0) for s in schedules)

    deductions = {
        "socialSecurity": round(gross * SOCIAL_SECURITY_RATE, 2),
        "taxes": round((gross - TAX_THRESHOLD) * TAX_RATE, 2) if gross > TAX_THRESHOLD else 0.0,
        "insurance": round(gross * INSURANCE_RATE, 2),
        "other": 0.0,
    }
    overtime_hours = max(0.0, total_hours - total_days * FULL_DAY_HOURS)
    bonuses = {
        "overtime": round(overtime_hours * rate * OVERTIME_MULTIPLIER, 2),
        "performance": PERFORMANCE_BONUS if total_days >= PERFORMANCE_MIN_DAYS else 0,
        "transport": total_days * TRANSPORT_PER_DAY,
        "other": 0,
    }
    total_deductions = round(sum(deductions.values()), 2)
    total_bonuses = round(sum(bonuses.values()), 2)

    return {
        "employeeId": employee["id"],
        "employee": employee,
        "totalHours": round(total_hours, 2),
        "totalDays": total_days,
        "overtimeHours": round(overtime_hours, 2),
        "grossSalary": round(gross, 2),
        "deductions": deductions,
        "bonuses": bonuses,
        "totalDeductions": total_deductions,
        "totalBonuses": total_bonuses,
        "netSalary": round(gross + total_bonuses - total_deductions, 2),
        "workDays": [
            {
                "date": s.get("date"),
                "hours": s.get("hoursWorked", 0),
                "salary": s.get("salary", 0),
                "status": s.get("status"),
            }
            for s in sorted(schedules, key=lambda s: s.get("date") or "")
        ],
    }


class PayrollService:

    @staticmethod
    def monthly(month: str, search: Optional[str] = None,
                department: Optional[str] = None) -> Dict[str, Any]:
        start, end = month_bounds(month)
        employees = PersonnelService.list_employees(search=search, department=department)
        schedules = ScheduleService.in_range(start, end, checked_only=True)
        default_rate = current_app.config["DEFAULT_HOURLY_RATE"]

        by_employee: Dict[str, List[Dict[str, Any]]] = {}
        for s in schedules:
            by_employee.setdefault(s.get("employeeId"), []).append(s)

        items = [compute_payroll(e, by_employee.get(e["id"], []), default_rate) for e in employees]
        totals = {
            "totalEmployees": len(items),
            "totalHours": round(sum(p["totalHours"] for p in items), 2),
            "totalGrossSalary": round(sum(p["grossSalary"] for p in items), 2),
            "totalDeductions": round(sum(p["totalDeductions"] for p in items), 2),
            "totalBonuses": round(sum(p["totalBonuses"] for p in items), 2),
            "totalNetSalary": round(sum(p["netSalary"] for p in items), 2),
        }
        return {"month": month, "currency": current_app.config["CURRENCY"], "items": items, "totals": totals}

    @staticmethod
    def for_employee(employee_id: str, month: str) -> Dict[str, Any]:
        employee = PersonnelService.get(employee_id)
        start, end = month_bounds(month)
        schedules = [
            s for s in ScheduleService.in_range(start, end, checked_only=True)
            if s.get("employeeId") == employee_id
        ]
        return compute_payroll(employee, schedules, current_app.config["DEFAULT_HOURLY_RATE"])

    @staticmethod
    def to_csv(payroll: Dict[str, Any]) -> str:
        currency = payroll.get("currency") or current_app.config["CURRENCY"]
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow([
            "Employee Name", "Department", "Days Worked", "Hours Worked",
            f"Gross Salary ({currency})", f"Total Deductions ({currency})",
            f"Total Bonuses ({currency})", f"Net Salary ({currency})",
        ])
        for p in payroll["items"]:
            emp = p["employee"]
            writer.writerow([
                full_name(emp), emp.get("department", ""), p["totalDays"], p["totalHours"],
                f"{p['grossSalary']:.2f}", f"{p['totalDeductions']:.2f}",
                f"{p['totalBonuses']:.2f}", f"{p['netSalary']:.2f}",
            ])
        return buf.getvalue()

    @staticmethod
    def payslip_pdf(payslip: Dict[str, Any], month: str) -> bytes:
        currency = current_app.config["CURRENCY"]
        emp = payslip["employee"]

        def money(v):
            return f"{float(v):.2f} {currency}"

        page = PdfPage()
        y = page.header(f"Payslip - {full_name(emp)}", f"Period: {month}  |  {emp.get('position', '')}, {emp.get('department', '')}")
        y = page.section(y, "Attendance", [
            ("Days worked", payslip["totalDays"]),
            ("Hours worked", payslip["totalHours"]),
            ("Overtime hours", payslip["overtimeHours"]),
            ("Hourly rate", money(emp.get("hourlyRate") or current_app.config["DEFAULT_HOURLY_RATE"])),
        ])
        y = page.section(y, "Earnings", [
            ("Gross salary", money(payslip["grossSalary"])),
            ("Overtime bonus", money(payslip["bonuses"]["overtime"])),
            ("Performance bonus", money(payslip["bonuses"]["performance"])),
            ("Transport allowance", money(payslip["bonuses"]["transport"])),
        ])
        y = page.section(y, "Deductions", [
            ("Social security (9.6%)", money(payslip["deductions"]["socialSecurity"])),
            ("Income tax", money(payslip["deductions"]["taxes"])),
            ("Insurance (1.5%)", money(payslip["deductions"]["insurance"])),
        ])
        page.line(MARGIN, y, PAGE_SIZE[0] - MARGIN, y)
        page.text(MARGIN + 16, y + 16, f"Net salary: {money(payslip['netSalary'])}", size=30, bold=True)
        return render_pdf([page])
