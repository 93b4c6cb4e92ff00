import logging

from flask import Flask
from .config import Config
from .extensions import db, migrate, jwt
from .errors import register_error_handlers
from .routes import (
    auth, users, courses, lessons, categories, coupons, enrollments, payments, progress, reviews
)
from .utils import auth as auth_callbacks  # registers the JWT loader callbacks
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix


def create_app(config_class=Config):
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)
    CORS(app, resources={r"/*": {"origins": "*"}})
    app.config.from_object(config_class)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    register_error_handlers(app)

    # Register blueprints
    app.register_blueprint(auth.bp, url_prefix="/auth")
    app.register_blueprint(users.bp, url_prefix="/users")
    app.register_blueprint(courses.bp, url_prefix="/courses")
    app.register_blueprint(reviews.bp, url_prefix="/courses")
    app.register_blueprint(lessons.bp, url_prefix="/lessons")
    app.register_blueprint(categories.bp, url_prefix="/categories")
    app.register_blueprint(coupons.bp)
    app.register_blueprint(enrollments.bp, url_prefix="/enrollments")
    app.register_blueprint(payments.bp, url_prefix="/payments")
    app.register_blueprint(progress.bp, url_prefix="/progress")

    if app.config.get("COUPON_POLICY") not in ("lenient", "strict"):
        raise ValueError("COUPON_POLICY must be 'lenient' or 'strict'")

    app.logger.info(f"CourseHub API started (coupon policy: {app.config['COUPON_POLICY']})")
    return app
