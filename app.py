import os
import logging
from flask import Flask, jsonify
from flask_cors import CORS
from config import Config
from extensions import db, migrate, jwt
from utils.errors import FundingError

# Blueprints
from audit.routes import audit_bp
from capital.routes import capital_bp
from finance.routes import finance_bp
from purchases.routes import purchase_requests_bp, delivery_bp

logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # ✅ Enable CORS with credentials so cookies work
    CORS(app, supports_credentials=True)

    # ✅ Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    # models referenced only through relationships/migrations
    from directory import models as directory_models  # noqa: F401
    from notifications import models as notification_models  # noqa: F401

    # ✅ Register Blueprints
    app.register_blueprint(capital_bp, url_prefix="/api/capital")
    app.register_blueprint(purchase_requests_bp, url_prefix="/api/purchase-requests")
    app.register_blueprint(delivery_bp, url_prefix="/api/delivery")
    app.register_blueprint(finance_bp, url_prefix="/api/finance")
    app.register_blueprint(audit_bp)

    start_scheduler(app)

    # ✅ Error handlers
    @app.errorhandler(FundingError)
    def funding_error(error):
        if error.status_code >= 500:
            app.logger.error("Request failed: %s", error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Route not found", "kind": "NotFound"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"error": "Internal server error", "kind": "Infrastructure"}), 500

    return app


def start_scheduler(app):
    """
    Background jobs: outbox delivery and deemed delivery. Runs only when
    enabled or in the reloader's main process, never for CLI commands.
    """
    if not app.config.get("SCHEDULER_ENABLED") and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        return None

    from apscheduler.schedulers.background import BackgroundScheduler
    from capital.service import build_orchestrator
    from notifications.dispatcher import process_outbox

    def _process_outbox_with_app():
        with app.app_context():
            try:
                process_outbox()
            except Exception:
                logger.exception("Outbox run failed")

    def _deemed_delivery_with_app():
        with app.app_context():
            try:
                build_orchestrator().run_deemed_delivery()
            except Exception:
                logger.exception("Deemed delivery run failed")

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        _process_outbox_with_app,
        'interval',
        minutes=app.config["OUTBOX_INTERVAL_MINUTES"],
        id='notification_outbox',
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        misfire_grace_time=60
    )
    scheduler.add_job(
        _deemed_delivery_with_app,
        'interval',
        minutes=app.config["DEEMED_DELIVERY_INTERVAL_MINUTES"],
        id='deemed_delivery',
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        misfire_grace_time=300
    )
    scheduler.start()
    logger.info("Background scheduler started (outbox every %s min, deemed delivery every %s min)",
                app.config["OUTBOX_INTERVAL_MINUTES"], app.config["DEEMED_DELIVERY_INTERVAL_MINUTES"])
    return scheduler


if __name__ == '__main__':
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 10000)), debug=True)
