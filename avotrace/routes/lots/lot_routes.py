# avotrace/routes/lots/lot_routes.py

import io

from flask import Blueprint, Response, current_app, jsonify, request, send_file
from werkzeug.utils import secure_filename

from avotrace.models.lot_models import (
    LotArchiveModel,
    LotCreateModel,
    LotDraftUpdateModel,
    StepAdvanceModel,
)
from avotrace.routes.auth_helpers import HANDLED_ERRORS, current_user_id, error_response, unauthorized
from avotrace.services.lots.lot_export import lot_report_pdf, lots_to_csv
from avotrace.services.lots.lot_labels import lot_qr_png
from avotrace.services.lots.lot_service import LotService

# This MUST be named lot_bp so register_blueprints.py can import it.
lot_bp = Blueprint("lots", __name__, url_prefix="/api/lots")


# ---------------------------------------------------------
# POST /api/lots
# ---------------------------------------------------------
@lot_bp.post("")
def create_lot():
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        payload = LotCreateModel.model_validate(request.get_json(silent=True) or {})
        lot = LotService.create_lot(user_id, payload)
        return jsonify({"ok": True, "lot": lot}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


# ---------------------------------------------------------
# GET /api/lots?status=&scope=active|archived|all
# ---------------------------------------------------------
@lot_bp.get("")
def list_lots():
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        items = LotService.list_lots(
            user_id,
            status=request.args.get("status"),
            scope=request.args.get("scope", "active"),
        )
        return jsonify({"ok": True, "items": items})
    except HANDLED_ERRORS as e:
        return error_response(e)


# ---------------------------------------------------------
# GET /api/lots/export.csv
# ---------------------------------------------------------
@lot_bp.get("/export.csv")
def export_lots_csv():
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        items = LotService.list_lots(user_id, scope=request.args.get("scope", "all"))
    except HANDLED_ERRORS as e:
        return error_response(e)

    return Response(
        lots_to_csv(items),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=lots.csv"},
    )


# ---------------------------------------------------------
# ARCHIVE STORE
# ---------------------------------------------------------
@lot_bp.get("/archives")
def list_archives():
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "items": LotService.list_archives(user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@lot_bp.get("/archives/<archive_id>")
def get_archive(archive_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "archive": LotService.get_archive(archive_id, user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


# ---------------------------------------------------------
# SINGLE LOT
# ---------------------------------------------------------
@lot_bp.get("/<lot_id>")
def get_lot(lot_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "lot": LotService.get_lot(lot_id, user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@lot_bp.patch("/<lot_id>")
def save_draft(lot_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        payload = LotDraftUpdateModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "lot": LotService.save_draft(lot_id, user_id, payload)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@lot_bp.delete("/<lot_id>")
def delete_lot(lot_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, **LotService.delete_lot(lot_id, user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@lot_bp.get("/<lot_id>/progress")
def lot_progress(lot_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, **LotService.progress(lot_id, user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


# ---------------------------------------------------------
# LIFECYCLE
# ---------------------------------------------------------
@lot_bp.post("/<lot_id>/steps/<int:step>")
def advance_step(lot_id, step):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        payload = StepAdvanceModel.model_validate(request.get_json(silent=True) or {})
        lot = LotService.advance_step(lot_id, user_id, step, payload.data, payload.baseVersion)
        return jsonify({"ok": True, "lot": lot})
    except HANDLED_ERRORS as e:
        return error_response(e)


@lot_bp.post("/<lot_id>/complete")
def complete_lot(lot_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "lot": LotService.complete_lot(lot_id, user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@lot_bp.post("/<lot_id>/archive")
def archive_lot(lot_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        payload = LotArchiveModel.model_validate(request.get_json(silent=True) or {})
        result = LotService.archive_lot(lot_id, user_id, payload.deleteOriginal)
        return jsonify({"ok": True, **result})
    except HANDLED_ERRORS as e:
        return error_response(e)


@lot_bp.post("/<lot_id>/duplicate")
def duplicate_lot(lot_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "lot": LotService.duplicate_lot(lot_id, user_id)}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


# ---------------------------------------------------------
# ASSIGNMENT
# ---------------------------------------------------------
@lot_bp.post("/<lot_id>/users/<member_id>")
def add_user(lot_id, member_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "lot": LotService.add_user_to_lot(lot_id, user_id, member_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@lot_bp.delete("/<lot_id>/users/<member_id>")
def remove_user(lot_id, member_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "lot": LotService.remove_user_from_lot(lot_id, user_id, member_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


# ---------------------------------------------------------
# DOCUMENTS
# ---------------------------------------------------------
@lot_bp.get("/<lot_id>/report.pdf")
def lot_report(lot_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        lot = LotService.get_lot(lot_id, user_id)
    except HANDLED_ERRORS as e:
        return error_response(e)

    filename = secure_filename(f"{lot['lotNumber']}.pdf")
    return send_file(
        io.BytesIO(lot_report_pdf(lot)),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=filename if filename != "pdf" else "lot-report.pdf",
    )


@lot_bp.get("/<lot_id>/qr.png")
def lot_qr(lot_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        lot = LotService.get_lot(lot_id, user_id)
    except HANDLED_ERRORS as e:
        return error_response(e)

    url = f"{current_app.config['PUBLIC_BASE_URL']}/api/lots/{lot['id']}"
    return Response(lot_qr_png(lot["lotNumber"], url), mimetype="image/png")
