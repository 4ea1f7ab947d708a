import os

from flask import Flask, jsonify

from config import Config
from gym_billing.clock import SystemClock
from gym_billing.extensions import db, login_manager
from gym_billing.logging_config import configure_logging, get_logger

logger = get_logger("app")


def create_app(config_class=Config, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app.config.get('LOG_LEVEL', 'INFO'), app.config.get('LOG_JSON', False))

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    app.extensions['clock'] = clock or SystemClock()

    # User loader for Flask-Login
    from gym_billing.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required', 'code': 'UNAUTHORIZED'}), 401

    # Register blueprints
    from gym_billing.routes import register_error_handlers
    from gym_billing.routes.auth import auth_bp
    from gym_billing.routes.billing import memberships_bp, member_addons_bp
    from gym_billing.routes.expenses import expenses_bp
    from gym_billing.routes.payments import payments_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(memberships_bp)
    app.register_blueprint(member_addons_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(payments_bp)
    register_error_handlers(app)

    uri = app.config['SQLALCHEMY_DATABASE_URI']
    if uri.startswith('sqlite:///'):
        os.makedirs(os.path.dirname(uri[len('sqlite:///'):]) or '.', exist_ok=True)

    with app.app_context():
        db.create_all()
        logger.info("Database tables ready")

    return app
