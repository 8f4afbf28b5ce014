# avotrace/routes/root/root_routes.py

from flask import Blueprint, jsonify

from avotrace.mongo_safe import get_db, is_mongo_enabled

# Root blueprint
root_bp = Blueprint("root", __name__)


# -----------------------------
# HEALTH
# -----------------------------
@root_bp.get("/health")
def health():
    db = get_db()
    return jsonify({
        "ok": True,
        "mongoEnabled": is_mongo_enabled(),
        "mongo": db is not None,
    })
