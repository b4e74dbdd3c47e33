"""Flask application factory."""

from flask import Flask
from flask_cors import CORS

from services.config import Settings
from services.report_generator import TemplateCache


def create_app(settings=None):
    """Create and configure the Flask application.

    Args:
        settings: Settings instance; loaded from the environment when omitted
    """
    app = Flask(__name__)

    if settings is None:
        settings = Settings.from_env()
    app.config["SETTINGS"] = settings
    app.config["TEMPLATE_CACHE"] = TemplateCache()
    app.config.setdefault("JIRA_REQUEST_DELAY", 0.25)

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": ["http://localhost:5173", "http://127.0.0.1:5173"],
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": [
                "Content-Type",
                "X-Jira-Token", "X-Jira-Email", "X-Jira-Server"
            ]
        }
    })

    # Register blueprints
    from app.api import auth, dashboard, manual_input, metrics, projects, reports, selection
    app.register_blueprint(auth.bp)
    app.register_blueprint(projects.bp)
    app.register_blueprint(selection.bp)
    app.register_blueprint(manual_input.bp)
    app.register_blueprint(metrics.bp)
    app.register_blueprint(reports.bp)
    app.register_blueprint(dashboard.bp)

    if settings.has_credentials:
        app.logger.info(f"Using Jira server {settings.jira_base_url}")
    else:
        app.logger.info("No JIRA_API_TOKEN configured, credentials must come from request headers")

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
