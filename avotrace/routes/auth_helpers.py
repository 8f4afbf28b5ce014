# avotrace/routes/auth_helpers.py
from __future__ import annotations

from typing import Optional

from flask import current_app, jsonify, session
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from avotrace.errors import AvoTraceError, StorageUnavailableError


def current_user_id() -> Optional[str]:
    """
    Bearer token first (mobile / API clients), then the browser session.
    Token identity may be a plain user id or a {"userId": ...} payload.
    """
    if verify_jwt_in_request(optional=True):
        identity = get_jwt_identity()
        if isinstance(identity, dict):
            identity = identity.get("userId")
        if identity:
            return str(identity)
    return session.get("user_id")


def unauthorized():
    return jsonify({"ok": False, "err": "unauthorized"}), 401


# what route handlers catch; anything else is a bug and goes to Flask's 500 handler
HANDLED_ERRORS = (AvoTraceError, ValidationError, PyMongoError)


def error_response(e):
    if isinstance(e, PyMongoError):
        current_app.logger.exception("Document store error")
        e = StorageUnavailableError("Document store unavailable, try again later")
    if isinstance(e, AvoTraceError):
        current_app.logger.warning("%s: %s", type(e).__name__, e)
        return jsonify({"ok": False, "err": str(e)}), e.status_code
    current_app.logger.warning("payload rejected: %s", e)
    return jsonify({"ok": False, "err": e.errors(include_url=False, include_context=False)}), 400
