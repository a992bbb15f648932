import logging
import os

from flask import Flask

from .extensions import db, login_manager, migrate


def create_app(config_object: str | None = None, overrides: dict | None = None):
    app = Flask(__name__, instance_relative_config=True)

    # ensure instance folder exists (Flask-managed)
    os.makedirs(app.instance_path, exist_ok=True)

    # Load config by environment
    env = os.getenv("FLASK_ENV", "development").lower()
    if config_object is None:
        config_object = "config.ProductionConfig" if env == "production" else "config.DevelopmentConfig"
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    if app.config.get("ENV") == "production":
        missing = [key for key in app.config.get("REQUIRED_SETTINGS", ()) if not os.getenv(key)]
        if missing:
            raise RuntimeError("Missing required production settings: " + ", ".join(missing))

    # If using sqlite and path is relative, force it into instance_path (Windows-safe)
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if uri.startswith("sqlite:///") and not uri.startswith("sqlite:////"):
        db_name = os.path.basename(uri[len("sqlite:///"):]) or "rewardhub.db"
        db_file = os.path.join(app.instance_path, db_name)
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///" + db_file.replace("\\", "/")

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        # concurrent writers wait on the database lock instead of failing at once
        engine_options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        engine_options.setdefault("connect_args", {"timeout": 30})
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Init extensions
    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Blueprints
    from rewardhub.auth import auth_bp
    from rewardhub.wallet import wallet_bp
    from rewardhub.referrals import referral_bp
    from rewardhub.withdrawals import withdrawal_bp
    from rewardhub.admin import admin_bp
    from rewardhub.payments import payments_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(referral_bp)
    app.register_blueprint(withdrawal_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(payments_bp)

    from .commands import register_commands
    register_commands(app)

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app
