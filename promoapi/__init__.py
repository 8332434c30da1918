import logging
from flask import Flask
from .config import Config
from .extensions import db, jwt, cors, migrate
from .utils.api import ok

def create_app(config_class=Config):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    config_class.init_app(app)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": app.config["CORS_ORIGINS"]}})
    migrate.init_app(app, db)

    # Register blueprints
    from .auth import bp as auth_bp; app.register_blueprint(auth_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .discount import bp as discount_bp; app.register_blueprint(discount_bp)

    from .errors import register_error_handlers
    register_error_handlers(app)
    from .cli import register_cli
    register_cli(app)

    @app.get("/")
    def health():
        return ok("API running")

    with app.app_context():
        from . import model  # noqa: F401  (register tables)
        db.create_all()
        app.logger.debug("routes: %s", sorted(r.rule for r in app.url_map.iter_rules()))

    return app
