import json
import os
from concurrent.futures import ThreadPoolExecutor
from flask import Blueprint, render_template, request, redirect, url_for, flash, abort, current_app, send_from_directory

from ..gateway import DataGateway, GatewayError
from ..models import CONTACT_STATUS_NEW
from ..utils import clean_text, is_valid_email

main_bp = Blueprint('main', __name__)
HOMEPAGE_SECTIONS = {
    'services': 'services',
    'case_studies': 'case_studies',
    'processes': 'working_processes',
    'team': 'team_members',
    'testimonials': 'testimonials',
}
CONTACT_KINDS = {
    'say_hi': 'Say Hi',
    'get_quote': 'Get a Quote',
}


def _load_active_rows(app, table):
    with app.app_context():
        try:
            return DataGateway().list(table, order=('sort_order', 'created_at'), filters={'is_active': True})
        except GatewayError:
            app.logger.exception('Homepage section %s failed to load.', table)
            return []


def load_homepage_sections(app):
    """Fetch the active rows of every public section in parallel."""
    workers = max(1, int(app.config.get('HOMEPAGE_FETCH_WORKERS', 5)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            name: pool.submit(_load_active_rows, app, table)
            for name, table in HOMEPAGE_SECTIONS.items()
        }
        return {name: future.result() for name, future in futures.items()}


def parse_socials(raw_value):
    if not raw_value:
        return {}
    try:
        parsed = json.loads(raw_value)
    except (TypeError, ValueError):
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {str(key): str(value) for key, value in parsed.items() if isinstance(value, str) and value.startswith(('http://', 'https://'))}


@main_bp.route('/')
def index():
    sections = load_homepage_sections(current_app._get_current_object())
    for member in sections['team']:
        member['socials'] = parse_socials(member.get('socials_json'))
    return render_template('index.html', contact_kinds=CONTACT_KINDS, **sections)


@main_bp.route('/contact', methods=['POST'])
def contact():
    name = clean_text(request.form.get('name', ''), 200)
    email = clean_text(request.form.get('email', ''), 200)
    message = clean_text(request.form.get('message', ''), 5000)
    kind = request.form.get('kind', 'say_hi')
    if kind not in CONTACT_KINDS:
        kind = 'say_hi'

    if not name or not email or not message:
        flash('Name, email, and message are required.', 'danger')
        return redirect(url_for('main.index', _anchor='contact'))
    if not is_valid_email(email):
        flash('Please provide a valid email address.', 'danger')
        return redirect(url_for('main.index', _anchor='contact'))

    try:
        submission = DataGateway().insert('contact_submissions', {
            'name': name,
            'email': email,
            'message': f'[{CONTACT_KINDS[kind]}] {message}',
            'status': CONTACT_STATUS_NEW,
        })
    except GatewayError:
        current_app.logger.exception('Contact submission failed to save.')
        flash('Failed to send message. Please try again.', 'danger')
        return redirect(url_for('main.index', _anchor='contact'))
    current_app.logger.info('Contact submission saved (id=%s)', submission['id'])
    flash("Message sent successfully! We'll get back to you soon.", 'success')
    return redirect(url_for('main.index', _anchor='contact'))


@main_bp.route('/storage/<bucket>/<filename>')
def stored_object(bucket, filename):
    storage = current_app.extensions['positivus.storage']
    try:
        full_path = storage.object_path(bucket, filename)
    except GatewayError:
        abort(404)
    if not full_path or not os.path.exists(full_path):
        abort(404)
    return send_from_directory(os.path.dirname(full_path), os.path.basename(full_path), conditional=True, etag=True)
