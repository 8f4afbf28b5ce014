# avotrace/routes/archive/archive_routes.py

from flask import Blueprint, abort, current_app, jsonify, request, send_from_directory

from avotrace.models.archive_models import BoxCreateModel, BoxItemCreateModel
from avotrace.routes.auth_helpers import HANDLED_ERRORS, current_user_id, error_response, unauthorized
from avotrace.services.archive.archive_service import ArchiveService
from avotrace.services.archive.object_storage import ObjectStorage

archive_bp = Blueprint("archive", __name__, url_prefix="/api/archive")

# stored objects, public like /static
files_bp = Blueprint("files", __name__, url_prefix="/files")


# -----------------------------
# BOXES
# -----------------------------
@archive_bp.get("/boxes")
def list_boxes():
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "items": ArchiveService.list_boxes(user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@archive_bp.post("/boxes")
def create_box():
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        payload = BoxCreateModel.model_validate(request.get_json(silent=True) or {})
        return jsonify({"ok": True, "box": ArchiveService.create_box(user_id, payload)}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


@archive_bp.delete("/boxes/<box_id>")
def delete_box(box_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, **ArchiveService.delete_box(box_id, user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


# -----------------------------
# ITEMS
# -----------------------------
@archive_bp.get("/boxes/<box_id>/items")
def list_items(box_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, "items": ArchiveService.list_items(box_id, user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


@archive_bp.post("/boxes/<box_id>/items")
def add_item(box_id):
    """
    multipart/form-data: name, type (optional), file (optional)
    or JSON {name, type} for a note without attachment.
    """
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        data = request.form.to_dict() if request.form else (request.get_json(silent=True) or {})
        payload = BoxItemCreateModel.model_validate(data)
        item = ArchiveService.add_item(box_id, user_id, payload, request.files.get("file"))
        return jsonify({"ok": True, "item": item}), 201
    except HANDLED_ERRORS as e:
        return error_response(e)


@archive_bp.delete("/items/<item_id>")
def delete_item(item_id):
    user_id = current_user_id()
    if not user_id:
        return unauthorized()

    try:
        return jsonify({"ok": True, **ArchiveService.delete_item(item_id, user_id)})
    except HANDLED_ERRORS as e:
        return error_response(e)


# -----------------------------
# STORED FILES
# -----------------------------
@files_bp.get("/<path:storage_path>")
def serve_file(storage_path):
    if ObjectStorage.resolve(storage_path) is None:
        abort(404)
    return send_from_directory(current_app.config["UPLOAD_ROOT"], storage_path)
