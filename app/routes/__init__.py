"""
Routes package
Registers the record service blueprints
"""
from .api_records import records_api_bp
from .api_system import system_api_bp


def register_blueprints(app):
    """Register every blueprint with the Flask app."""
    app.register_blueprint(system_api_bp)
    app.register_blueprint(records_api_bp)

    app.logger.info("Registered record service blueprints")
