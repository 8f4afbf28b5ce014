# avotrace/routes/quality/quality_routes.py

from flask import Blueprint, jsonify, request

from avotrace.models.quality_models import (
    QcCreateModel,
    QcPaletteUpdateModel,
    QcReviewModel,
    QcSubmitModel,
    QcUpdateModel,
)
from avotrace.routes.auth_helpers import HANDLED_ERRORS, current_user_id, error_response, unauthorized
from avotrace.services.quality.quality_service import QualityService

quality_bp = Blueprint("quality", __name__, url_prefix="/api/quality")


# -----------------------------
# LIST / CREATE
# -----------------------------
@quality_bp.get("")
def list_records():
    if not current_user_id():
        return unauthorized()

    try:
        items = QualityService.list_records(status=request.args.get("status"))
        return jsonify({"ok": True, "items": items})
    except HANDLED_ERRORS as e:
        return error_response(e)


@quality_bp.post("")
def create_record():
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        payload = QcCreateModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "record": QualityService.create(user_id, payload)}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


# -----------------------------
# SYNC (lots -> QC sheets, local -> remote)
# -----------------------------
@quality_bp.post("/sync-lots")
def sync_lots():
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        created = QualityService.sync_from_lots(user_id)
        return jsonify({"ok": True, "created": created, "count": len(created)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@quality_bp.post("/sync")
def sync_pending():
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, **QualityService.sync_pending()})
    except HANDLED_ERRORS as e:
        return error_response(e)


# -----------------------------
# SINGLE RECORD
# -----------------------------
@quality_bp.get("/<record_id>")
def get_record(record_id):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, "record": QualityService.get(record_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@quality_bp.patch("/<record_id>")
def update_record(record_id):
    if not current_user_id():
        return unauthorized()

    try:
        payload = QcUpdateModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "record": QualityService.update(record_id, payload)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@quality_bp.put("/<record_id>/palettes/<int:index>")
def update_palette(record_id, index):
    if not current_user_id():
        return unauthorized()

    try:
        payload = QcPaletteUpdateModel.model_validate(request.get_json(silent=True) or {})
        record = QualityService.update_palette(record_id, index, payload.values, payload.baseVersion)
        return jsonify({"ok": True, "record": record})
    except HANDLED_ERRORS as e:
        return error_response(e)


@quality_bp.delete("/<record_id>")
def delete_record(record_id):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, **QualityService.delete(record_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@quality_bp.post("/<record_id>/duplicate")
def duplicate_record(record_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "record": QualityService.duplicate(record_id, user_id)}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


@quality_bp.get("/<record_id>/averages")
def record_averages(record_id):
    if not current_user_id():
        return unauthorized()

    try:
        return jsonify({"ok": True, "averages": QualityService.averages(record_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


# -----------------------------
# REVIEW
# -----------------------------
@quality_bp.post("/<record_id>/submit")
def submit_record(record_id):
    if not current_user_id():
        return unauthorized()

    try:
        payload = QcSubmitModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "record": QualityService.submit(record_id, payload.controller)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@quality_bp.post("/<record_id>/approve")
def approve_record(record_id):
    if not current_user_id():
        return unauthorized()

    try:
        payload = QcReviewModel.model_validate(request.get_json(silent=True) or {})
        record = QualityService.review(record_id, payload.chief, True, payload.comments)
        return jsonify({"ok": True, "record": record})
    except HANDLED_ERRORS as e:
        return error_response(e)


@quality_bp.post("/<record_id>/reject")
def reject_record(record_id):
    if not current_user_id():
        return unauthorized()

    try:
        payload = QcReviewModel.model_validate(request.get_json(silent=True) or {})
        record = QualityService.review(record_id, payload.chief, False, payload.comments)
        return jsonify({"ok": True, "record": record})
    except HANDLED_ERRORS as e:
        return error_response(e)


# -----------------------------
# IMAGES
# -----------------------------
@quality_bp.post("/<record_id>/images")
def upload_image(record_id):
    if not current_user_id():
        return unauthorized()

    try:
        record = QualityService.add_image(record_id, request.files.get("file"))
        return jsonify({"ok": True, "record": record}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)
