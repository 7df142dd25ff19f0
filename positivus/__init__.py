import os
import secrets
import warnings

from flask import Flask, flash, redirect, render_template, url_for
from flask_login import LoginManager
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .content_types import CONTENT_TYPES, content_type_slug
from .gateway import ObjectStorage
from .images import ImageStaging
from .models import db, User, ContactSubmission, CONTACT_STATUS_NEW
from .observability import configure_logging, init_sentry
from .security import CSRF_FAILURE, csrf_input, get_csp_nonce, get_csrf_token, init_security, safe_referrer_path

login_manager = LoginManager()
login_manager.login_view = 'admin.login'

ADMIN_SECTIONS = [
    {'slug': content_type_slug(content_type), 'label': content_type['plural']}
    for content_type in CONTENT_TYPES.values()
]


@login_manager.user_loader
def load_user(user_id):
    if not str(user_id).isdigit():
        return None
    return db.session.get(User, int(user_id))


def count_new_contacts():
    try:
        return ContactSubmission.query.filter_by(status=CONTACT_STATUS_NEW).count()
    except SQLAlchemyError:
        db.session.rollback()
        return 0


def register_error_handlers(app):
    def back_with(message):
        flash(message, 'danger')
        return redirect(safe_referrer_path(url_for('main.index')))

    @app.errorhandler(400)
    def bad_request(error):
        if getattr(error, 'description', '') == CSRF_FAILURE:
            return back_with('Your form session expired. Please retry your action.')
        return error

    @app.errorhandler(404)
    def not_found(error):
        return render_template('errors/404.html'), 404

    @app.errorhandler(413)
    def too_large(error):
        return back_with('Upload is too large.')

    @app.errorhandler(500)
    def server_error(error):
        return render_template('errors/500.html'), 500


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config.update(config_overrides or {})
    configure_logging(app)

    if not app.config.get('SECRET_KEY'):
        app.config['SECRET_KEY'] = secrets.token_urlsafe(32)
        warnings.warn(
            'SECRET_KEY is not set; sessions will be lost on restart. '
            'Set SECRET_KEY in the environment for production.',
            stacklevel=2,
        )
    if app.config.get('TRUST_PROXY_HEADERS'):
        # One hop: the platform's edge proxy.
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)
    init_sentry(app)

    for folder in (app.config['UPLOAD_FOLDER'], app.config['STAGING_FOLDER']):
        os.makedirs(folder, exist_ok=True)
    db.init_app(app)
    login_manager.init_app(app)
    app.extensions['positivus.storage'] = ObjectStorage.from_config(app.config)
    app.extensions['positivus.staging'] = ImageStaging.from_config(app.config)

    init_security(app)
    register_error_handlers(app)

    @app.context_processor
    def template_globals():
        return {
            'csrf_token': get_csrf_token,
            'csrf_input': csrf_input,
            'csp_nonce': get_csp_nonce(),
            'admin_sections': ADMIN_SECTIONS,
            'new_contact_count': count_new_contacts,
        }

    @app.get('/healthz')
    def healthz():
        try:
            db.session.execute(text('SELECT 1'))
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception('Health check could not reach the database.')
            return {'status': 'degraded'}, 503
        return {'status': 'ok'}, 200

    from .routes.main import main_bp
    from .routes.admin import admin_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(admin_bp, url_prefix='/admin')

    with app.app_context():
        try:
            db.create_all()
            from .seed import seed_database
            seed_database()
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception('Database setup failed; tables or seed data may be missing.')

    return app
