from flask import Flask
from flasgger import Swagger
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import get_config
from .errors import register_error_handlers
from models.db_storage import DBStorage
from services.container import build_services

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Identity API",
        "version": "1.0.0",
        "description": "Registration, email verification, login, token refresh, password reset, user/role administration and notifications.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the access token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, storage: DBStorage | None = None, services=None) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    `storage` and `services` may be injected (tests); otherwise the storage is
    built from DATABASE_URL and the services from the selected config.
    """
    app = Flask(__name__)

    config = get_config(config_name)
    config.validate()
    app.config.from_object(config)

    if services is None:
        if storage is None:
            storage = DBStorage(app.config["DATABASE_URL"])
            storage.reload()
        services = build_services(app.config, storage)
    app.extensions["identity"] = services

    # trust X-Forwarded-For only from the configured number of proxy hops
    hops = app.config.get("TRUSTED_PROXIES", 0)
    if hops:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=hops)

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp
    from .notifications import bp as notifications_bp
    from .cli import register_commands

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")
    app.register_blueprint(notifications_bp, url_prefix="/api/v1/notifications")
    register_commands(app)

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # This calls scoped_session.remove(), preventing connection leaks
        services.storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to the Identity API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
