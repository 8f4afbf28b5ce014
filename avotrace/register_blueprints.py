"""
Centralized Blueprint Registration
All blueprints MUST be registered inside register_all_blueprints(app)
"""


def register_all_blueprints(app):

    # Root
    from avotrace.routes.root.root_routes import root_bp
    app.register_blueprint(root_bp)

    # Lot lifecycle
    from avotrace.routes.lots.lot_routes import lot_bp
    app.register_blueprint(lot_bp)

    # Personnel / schedules / payroll
    from avotrace.routes.personnel.personnel_routes import personnel_bp
    app.register_blueprint(personnel_bp)

    # Quality control
    from avotrace.routes.quality.quality_routes import quality_bp
    app.register_blueprint(quality_bp)

    # Reception sheets
    from avotrace.routes.reception.reception_routes import reception_bp
    app.register_blueprint(reception_bp)

    # Document archive + stored files
    from avotrace.routes.archive.archive_routes import archive_bp, files_bp
    app.register_blueprint(archive_bp)
    app.register_blueprint(files_bp)

    app.logger.info("All blueprints registered")
