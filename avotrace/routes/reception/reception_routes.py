# avotrace/routes/reception/reception_routes.py

from flask import Blueprint, jsonify, request

from avotrace.errors import ValidationFailed
from avotrace.models.reception_models import SheetCreateModel, SheetRenameModel, SheetUpdateModel
from avotrace.routes.auth_helpers import HANDLED_ERRORS, current_user_id, error_response, unauthorized
from avotrace.services.reception.reception_service import ReceptionService

reception_bp = Blueprint("reception", __name__, url_prefix="/api/reception")

_ARCHIVED_FILTER = {"false": False, "true": True, "all": None}


# -----------------------------
# LIST / CREATE / SYNC
# -----------------------------
@reception_bp.get("/<kind>")
def list_sheets(kind):
    if not current_user_id():
        return unauthorized()

    try:
        flag = (request.args.get("archived") or "false").lower()
        if flag not in _ARCHIVED_FILTER:
            raise ValidationFailed("archived must be one of true, false, all")
        items = ReceptionService.list_sheets(kind, archived=_ARCHIVED_FILTER[flag])
        return jsonify({"ok": True, "items": items})
    except HANDLED_ERRORS as e:
        return error_response(e)


@reception_bp.post("/<kind>")
def create_sheet(kind):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        payload = SheetCreateModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "sheet": ReceptionService.create(kind, user_id, payload)}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


@reception_bp.post("/<kind>/sync")
def sync_pending(kind):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, **ReceptionService.sync_pending(kind)})
    except HANDLED_ERRORS as e:
        return error_response(e)


# -----------------------------
# SINGLE SHEET
# -----------------------------
@reception_bp.get("/<kind>/<sheet_id>")
def get_sheet(kind, sheet_id):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, "sheet": ReceptionService.get(kind, sheet_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@reception_bp.patch("/<kind>/<sheet_id>")
def update_sheet(kind, sheet_id):
    if not current_user_id():
        return unauthorized()

    try:
        payload = SheetUpdateModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "sheet": ReceptionService.update(kind, sheet_id, payload)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@reception_bp.put("/<kind>/<sheet_id>/name")
def rename_sheet(kind, sheet_id):
    if not current_user_id():
        return unauthorized()

    try:
        payload = SheetRenameModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "sheet": ReceptionService.rename(kind, sheet_id, payload.lotNumber)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@reception_bp.delete("/<kind>/<sheet_id>")
def delete_sheet(kind, sheet_id):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, **ReceptionService.delete(kind, sheet_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@reception_bp.post("/<kind>/<sheet_id>/duplicate")
def duplicate_sheet(kind, sheet_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "sheet": ReceptionService.duplicate(kind, sheet_id, user_id)}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


@reception_bp.post("/<kind>/<sheet_id>/archive")
def archive_sheet(kind, sheet_id):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, "sheet": ReceptionService.archive(kind, sheet_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@reception_bp.get("/<kind>/<sheet_id>/totals")
def sheet_totals(kind, sheet_id):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, "totals": ReceptionService.totals(kind, sheet_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)
