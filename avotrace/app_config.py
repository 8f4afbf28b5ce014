# avotrace/app_config.py

import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_config(app, overrides=None):
    """
    Load all Flask configuration in a clean centralized way.
    `overrides` (tests, scripts) wins over environment values.
    """
    # ------------------------------
    # Mongo
    # ------------------------------
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI",
        "mongodb://localhost:27017/avotrace_db"
    )

    # ------------------------------
    # Security Keys
    # ------------------------------
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", os.urandom(24))
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "change-me")

    # ------------------------------
    # Object storage / local cache
    # ------------------------------
    app.config["UPLOAD_ROOT"] = os.getenv(
        "UPLOAD_ROOT",
        os.path.join(app.root_path, "static", "uploads")
    )
    app.config["UPLOAD_URL_PREFIX"] = "/files"
    app.config["LOCAL_CACHE_DIR"] = os.getenv(
        "LOCAL_CACHE_DIR",
        os.path.join(app.instance_path, "local_cache")
    )

    # ------------------------------
    # Lot lifecycle
    # ------------------------------
    app.config["LOT_AUTO_ARCHIVE"] = _flag("LOT_AUTO_ARCHIVE", "1")
    app.config["LOT_ARCHIVE_DELETE_ORIGINAL"] = _flag("LOT_ARCHIVE_DELETE_ORIGINAL", "0")

    # ------------------------------
    # Personnel / payroll
    # ------------------------------
    app.config["DEFAULT_HOURLY_RATE"] = float(os.getenv("DEFAULT_HOURLY_RATE", "15"))
    app.config["CURRENCY"] = os.getenv("CURRENCY", "MAD")

    # ------------------------------
    # Public links (QR labels)
    # ------------------------------
    app.config["PUBLIC_BASE_URL"] = os.getenv("PUBLIC_BASE_URL", "http://localhost:5000").rstrip("/")

    if overrides:
        app.config.update(overrides)

    app.logger.info("Config loaded (mongo=%s)", app.config["MONGO_URI"])
