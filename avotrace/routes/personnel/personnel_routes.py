# avotrace/routes/personnel/personnel_routes.py

from datetime import datetime, timezone

from flask import Blueprint, Response, jsonify, request

from avotrace.errors import ValidationFailed
from avotrace.models.personnel_models import (
    EmployeeCreateModel,
    EmployeeUpdateModel,
    ScheduleUpsertModel,
    TerminateModel,
    check_day,
    check_month,
)
from avotrace.routes.auth_helpers import HANDLED_ERRORS, current_user_id, error_response, unauthorized
from avotrace.services.personnel.payroll_service import PayrollService
from avotrace.services.personnel.personnel_service import PersonnelService
from avotrace.services.personnel.schedule_service import ScheduleService

personnel_bp = Blueprint("personnel", __name__, url_prefix="/api/personnel")


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _arg(name: str, check, default=None) -> str:
    value = request.args.get(name) or default
    try:
        return check(value)
    except ValueError as e:
        raise ValidationFailed(f"{name}: {e}")


def _csv(body: str, filename: str) -> Response:
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ---------------------------------------------------------
# EMPLOYEES
# ---------------------------------------------------------
@personnel_bp.get("/employees")
def list_employees():
    if not current_user_id():
        return unauthorized()

    try:
        items = PersonnelService.list_employees(
            search=request.args.get("search"),
            department=request.args.get("department"),
            status=request.args.get("status"),
        )
        return jsonify({"ok": True, "items": items})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.get("/employees/export.csv")
def export_employees():
    if not current_user_id():
        return unauthorized()

    try:
        items = PersonnelService.list_employees(
            search=request.args.get("search"),
            department=request.args.get("department"),
            status=request.args.get("status"),
        )
    except HANDLED_ERRORS as e:
        return error_response(e)
    return _csv(PersonnelService.to_csv(items), f"personnel-{_today()}.csv")


@personnel_bp.post("/employees")
def create_employee():
    if not current_user_id():
        return unauthorized()

    try:
        payload = EmployeeCreateModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "employee": PersonnelService.create(payload)}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.get("/employees/<employee_id>")
def get_employee(employee_id):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, "employee": PersonnelService.get(employee_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.patch("/employees/<employee_id>")
def update_employee(employee_id):
    if not current_user_id():
        return unauthorized()

    try:
        payload = EmployeeUpdateModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "employee": PersonnelService.update(employee_id, payload)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.post("/employees/<employee_id>/terminate")
def terminate_employee(employee_id):
    if not current_user_id():
        return unauthorized()

    try:
        payload = TerminateModel.model_validate(request.get_json(silent=True) or {})
        employee = PersonnelService.terminate(employee_id, payload.fireDate, payload.reason)
        return jsonify({"ok": True, "employee": employee})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.delete("/employees/<employee_id>")
def delete_employee(employee_id):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, **PersonnelService.delete(employee_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.get("/departments")
def departments():
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, "items": PersonnelService.departments()})
    except HANDLED_ERRORS as e:
        return error_response(e)


# ---------------------------------------------------------
# DAILY SCHEDULES
# ---------------------------------------------------------
@personnel_bp.get("/schedules")
def list_schedules():
    if not current_user_id():
        return unauthorized()

    try:
        day = _arg("date", check_day, _today())
        return jsonify({"ok": True, "date": day, "items": ScheduleService.for_date(day)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.put("/schedules")
def upsert_schedule():
    if not current_user_id():
        return unauthorized()

    try:
        payload = ScheduleUpsertModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "schedule": ScheduleService.upsert(payload)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.get("/stats")
def daily_stats():
    if not current_user_id():
        return unauthorized()

    try:
        day = _arg("date", check_day, _today())
        return jsonify({"ok": True, "stats": ScheduleService.daily_stats(day)})
    except HANDLED_ERRORS as e:
        return error_response(e)


# ---------------------------------------------------------
# WORK-HOURS HISTORY
# ---------------------------------------------------------
def _history():
    start = _arg("start", check_day)
    end = _arg("end", check_day)
    if start > end:
        raise ValidationFailed("start must not be after end")
    return ScheduleService.history(
        start, end,
        search=request.args.get("search"),
        department=request.args.get("department"),
    )


@personnel_bp.get("/history")
def work_history():
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, **_history()})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.get("/history/export.csv")
def export_history():
    if not current_user_id():
        return unauthorized()

    try:
        history = _history()
    except HANDLED_ERRORS as e:
        return error_response(e)

    name = f"{history['start']}-to-{history['end']}.csv"
    if request.args.get("kind") == "detailed":
        return _csv(ScheduleService.history_detailed_csv(history), f"work-hours-detailed-{name}")
    return _csv(ScheduleService.history_summary_csv(history), f"work-hours-report-{name}")


# ---------------------------------------------------------
# PAYROLL
# ---------------------------------------------------------
@personnel_bp.get("/payroll")
def payroll():
    if not current_user_id():
        return unauthorized()

    try:
        month = _arg("month", check_month, _today()[:7])
        result = PayrollService.monthly(
            month,
            search=request.args.get("search"),
            department=request.args.get("department"),
        )
        return jsonify({"ok": True, **result})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.get("/payroll/export.csv")
def export_payroll():
    if not current_user_id():
        return unauthorized()

    try:
        month = _arg("month", check_month, _today()[:7])
        result = PayrollService.monthly(
            month,
            search=request.args.get("search"),
            department=request.args.get("department"),
        )
    except HANDLED_ERRORS as e:
        return error_response(e)
    return _csv(PayrollService.to_csv(result), f"payroll-{month}.csv")


@personnel_bp.get("/payroll/<employee_id>")
def employee_payroll(employee_id):
    if not current_user_id():
        return unauthorized()

    try:
        month = _arg("month", check_month, _today()[:7])
        return jsonify({"ok": True, "month": month, "payslip": PayrollService.for_employee(employee_id, month)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@personnel_bp.get("/payroll/<employee_id>/payslip.pdf")
def employee_payslip(employee_id):
    if not current_user_id():
        return unauthorized()

    try:
        month = _arg("month", check_month, _today()[:7])
        payslip = PayrollService.for_employee(employee_id, month)
    except HANDLED_ERRORS as e:
        return error_response(e)

    return Response(
        PayrollService.payslip_pdf(payslip, month),
        mimetype="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=payslip-{employee_id}-{month}.pdf"},
    )
