"""Flask application factory."""

import json
import os
from concurrent.futures import ThreadPoolExecutor
from flask import Flask
from flask_cors import CORS

from services.shortcut_directory import DEFAULT_API_BASE

CONFIG_DIR = os.path.join(os.path.dirname(__file__), "..", "config")

# Global config storage - team names offered for AI reports
_report_team_names = []


def load_app_config(app):
    """Load report teams and storage settings from config file."""
    global _report_team_names
    config_path = os.path.join(CONFIG_DIR, "app-config.json")

    app.config.setdefault("REPORT_HISTORY_FILE", os.path.join(CONFIG_DIR, "report-history.json"))
    app.config.setdefault("SHORTCUT_API_BASE", DEFAULT_API_BASE)

    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                config = json.load(f)
                _report_team_names = [str(name) for name in config.get("reportTeams", [])]
                if config.get("reportHistoryFile"):
                    app.config["REPORT_HISTORY_FILE"] = config["reportHistoryFile"]
                if config.get("shortcutApiBase"):
                    app.config["SHORTCUT_API_BASE"] = config["shortcutApiBase"]
                app.logger.info(
                    f"Loaded {len(_report_team_names)} report teams"
                )
        except (json.JSONDecodeError, IOError) as e:
            app.logger.warning(f"Failed to load app config: {e}")
            _report_team_names = []
    else:
        app.logger.info("No app-config.json found, reports include all teams")
        _report_team_names = []


def get_report_team_names():
    """Team names included in reports when a request selects none."""
    return list(_report_team_names)


def create_app(config=None):
    """Create and configure the Flask application.

    Args:
        config: Optional mapping applied over the defaults and the config
            file (e.g. REPORT_HISTORY_FILE in tests)
    """
    app = Flask(__name__)

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": ["http://localhost:5173", "http://127.0.0.1:5173"],
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "X-Shortcut-Token"]
        }
    })

    # Load report teams and storage configuration
    load_app_config(app)
    if config:
        app.config.update(config)

    # Report generations run here; a run continues after its client disconnects
    app.extensions["report_executor"] = ThreadPoolExecutor(
        max_workers=app.config.get("REPORT_WORKERS", 4),
        thread_name_prefix="report"
    )

    # Register blueprints
    from app.api import breakdowns, reports
    app.register_blueprint(breakdowns.bp)
    app.register_blueprint(reports.bp)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
