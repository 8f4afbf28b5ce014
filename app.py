# app.py (gunicorn app:app + local run)

import os
from datetime import timedelta

from flask import Flask
from flask_cors import CORS
from flask_jwt_extended import JWTManager

from avotrace.app_config import load_config
from avotrace.mongo import init_mongo
from avotrace.register_blueprints import register_all_blueprints


def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)

    # -------------------------
    # Config & security
    # -------------------------
    load_config(app, test_config)
    app.permanent_session_lifetime = timedelta(days=7)

    CORS(app, resources={r"/*": {"origins": "*"}})

    # -------------------------
    # Mongo
    # -------------------------
    if os.getenv("DISABLE_MONGO", "0") == "1":
        app.logger.warning("Mongo disabled by DISABLE_MONGO=1")
    else:
        init_mongo(app)

    # -------------------------
    # JWT
    # -------------------------
    app.config.setdefault("JWT_ACCESS_TOKEN_EXPIRES", timedelta(hours=6))
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_TYPE"] = "Bearer"
    JWTManager(app)

    # -------------------------
    # Blueprints
    # -------------------------
    register_all_blueprints(app)

    return app


# gunicorn entry point
app = create_app()


# Local run only
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
