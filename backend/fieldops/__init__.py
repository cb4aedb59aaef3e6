from flask import Flask, current_app
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging
import os

load_dotenv()

jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    from .context import FieldContext

    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    app.config['CHANGE_FEED_SIZE'] = int(os.getenv('CHANGE_FEED_SIZE', '1000'))

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    logging.basicConfig(level=app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Database + change feed
    ctx = FieldContext(app.config['DATABASE_URL'], change_feed_size=app.config['CHANGE_FEED_SIZE'])
    app.extensions['fieldops'] = ctx
    app.teardown_appcontext(ctx.remove_session)

    # Register every table on Base.metadata
    from .models import user, restaurant, device, ticket, equipment, intervention, maintenance, notification, knowledge, audit  # noqa: F401

    jwt.init_app(app)

    @jwt.token_in_blocklist_loader
    def token_revoked(jwt_header, jwt_payload):
        from .models.user import TokenBlocklist
        session = get_db()
        return session.query(TokenBlocklist.id).filter_by(jti=jwt_payload['jti']).first() is not None

    from .routes.auth import auth_bp
    from .routes.tickets import tickets_bp
    from .routes.devices import devices_bp
    from .routes.restaurants import restaurants_bp
    from .routes.equipment import equipment_bp
    from .routes.maintenance import maintenance_bp
    from .routes.users import users_bp
    from .routes.knowledge import knowledge_bp
    from .routes.notifications import notifications_bp
    from .routes.changes import changes_bp
    from .routes.sync import sync_bp
    from .routes.audit import audit_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(tickets_bp, url_prefix='/tickets')
    app.register_blueprint(devices_bp, url_prefix='/devices')
    app.register_blueprint(restaurants_bp, url_prefix='/restaurants')
    app.register_blueprint(equipment_bp, url_prefix='/equipment')
    app.register_blueprint(maintenance_bp, url_prefix='/maintenance')
    app.register_blueprint(users_bp, url_prefix='/users')
    app.register_blueprint(knowledge_bp, url_prefix='/knowledge')
    app.register_blueprint(notifications_bp, url_prefix='/notifications')
    app.register_blueprint(changes_bp, url_prefix='/changes')
    app.register_blueprint(sync_bp, url_prefix='/sync')
    app.register_blueprint(audit_bp, url_prefix='/audit')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        # Whatever the request left pending must not leak into the next unit of work
        ctx.session().rollback()
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return current_app.extensions['fieldops'].session()


def get_context():
    return current_app.extensions['fieldops']
