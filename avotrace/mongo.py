# avotrace/mongo.py
from __future__ import annotations

import os
from flask_pymongo import PyMongo

mongo = PyMongo()


def init_mongo(app):
    """
    Initializes Flask-PyMongo.
    Requires app.config["MONGO_URI"] or env var MONGO_URI.
    Call this during app startup (create_app).
    """

    # If app.config doesn't have MONGO_URI, try env var
    if not app.config.get("MONGO_URI"):
        app.config["MONGO_URI"] = os.getenv("MONGO_URI")

    # If still missing, don't crash the app; services answer 503 instead
    if not app.config.get("MONGO_URI"):
        app.logger.warning("MONGO_URI not set. Mongo will not be initialized.")
        return mongo

    try:
        mongo.init_app(app)
        app.logger.info("Mongo initialized")
    except Exception as e:
        app.logger.warning("Mongo init failed: %s", e)

    return mongo
