import os
from flask import Blueprint, render_template, request, redirect, url_for, flash, current_app, send_from_directory, session, abort
from flask_login import login_user, logout_user, current_user
from sqlalchemy import or_
from werkzeug.security import check_password_hash, generate_password_hash

from ..content_types import CONTENT_TYPES, SLUG_TO_TYPE, content_type_slug
from ..editor import CrudEditor
from ..gateway import DataGateway, GatewayError
from ..images import PendingImage
from ..models import (
    User,
    CONTACT_STATUSES,
    CONTACT_STATUS_NEW,
    CONTACT_STATUS_READ,
    CONTACT_STATUS_LABELS,
    normalize_contact_status,
)
from ..utils import clean_text, format_time_ago

admin_bp = Blueprint('admin', __name__)
AUTH_DUMMY_HASH = generate_password_hash('Positivus::dummy-auth-check')
EDITOR_STATE_KEY = 'editor_state'
DEFAULT_SECTION = 'services'


@admin_bp.before_request
def require_admin_session():
    if request.endpoint == 'admin.login':
        if current_user.is_authenticated:
            return redirect(url_for('admin.editor', slug=DEFAULT_SECTION))
        return None
    if not current_user.is_authenticated:
        return redirect(url_for('admin.login'))
    return None


def discard_staged_images():
    """Delete staged files still referenced by the session's editor states."""
    staging = current_app.extensions['positivus.staging']
    for state in (session.get(EDITOR_STATE_KEY) or {}).values():
        staging.discard(PendingImage.from_dict((state or {}).get('pending_image')))


# Auth
@admin_bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        identifier = clean_text(request.form.get('username'), 120)
        password = request.form.get('password', '')
        user = User.query.filter(or_(User.username == identifier, User.email == identifier)).first()
        if user:
            password_ok = user.check_password(password)
        else:
            # Keep response timing closer for unknown usernames.
            check_password_hash(AUTH_DUMMY_HASH, password or '')
            password_ok = False
        if user and password_ok:
            discard_staged_images()
            session.clear()
            login_user(user)
            current_app.logger.info('Admin %s signed in', user.username)
            return redirect(url_for('admin.editor', slug=DEFAULT_SECTION))
        current_app.logger.warning('Failed admin sign-in for %r', identifier)
        flash('Invalid credentials.', 'danger')
        return render_template('admin/login.html'), 401
    return render_template('admin/login.html')


@admin_bp.route('/logout', methods=['POST'])
def logout():
    discard_staged_images()
    logout_user()
    session.pop(EDITOR_STATE_KEY, None)
    return redirect(url_for('admin.login'))


@admin_bp.route('/')
def dashboard():
    return redirect(url_for('admin.editor', slug=DEFAULT_SECTION))


# Content editors
def _content_type_or_404(slug):
    content_type = CONTENT_TYPES.get(SLUG_TO_TYPE.get(slug, ''))
    if content_type is None:
        abort(404)
    return content_type


def load_editor(content_type):
    state = (session.get(EDITOR_STATE_KEY) or {}).get(content_type['table'])
    gateway = DataGateway()
    try:
        return CrudEditor.load(
            content_type,
            gateway,
            storage=current_app.extensions['positivus.storage'],
            staging=current_app.extensions['positivus.staging'],
            state=state,
        )
    except GatewayError:
        current_app.logger.exception('Failed to load %s', content_type['table'])
        flash(f'Failed to load {content_type["plural"].lower()}', 'danger')
        return None


def store_editor(editor):
    states = dict(session.get(EDITOR_STATE_KEY) or {})
    states[editor.content_type['table']] = editor.to_state()
    session[EDITOR_STATE_KEY] = states


def apply_form_fields(editor, blur=False):
    """Copy posted field values into the editor's form buffer."""
    if not editor.is_mutable:
        return
    for field in editor.content_type['fields']:
        key = field['key']
        if field['type'] == 'image':
            continue
        if field['type'] == 'bool':
            editor.set_field(key, key in request.form)
        elif key in request.form:
            editor.set_field(key, request.form.get(key, ''))
        if blur:
            editor.blur_field(key)


def render_editor(editor, content_type, status=200):
    for category, message in editor.notices:
        flash(message, category)
    editor.notices = []
    store_editor(editor)
    query = clean_text(request.values.get('q'), 100)
    pending_preview = None
    if editor.pending_image is not None:
        pending_preview = url_for('admin.staged_image', token=editor.pending_image.token)
    return render_template(
        'admin/editor.html',
        editor=editor,
        content_type=content_type,
        slug=content_type_slug(content_type),
        sidebar=editor.sidebar_items(query),
        query=query,
        pending_preview=pending_preview,
        delete_target=editor.find(editor.delete_gate.target),
    ), status


def run_editor_action(slug, action, read_form=False, blur=False):
    content_type = _content_type_or_404(slug)
    editor = load_editor(content_type)
    if editor is None:
        return render_template('admin/editor_unavailable.html', content_type=content_type), 503
    if read_form:
        apply_form_fields(editor, blur=blur)
    action(editor)
    return render_editor(editor, content_type)


@admin_bp.route('/<slug>')
def editor(slug):
    return run_editor_action(slug, lambda editor: None)


@admin_bp.route('/<slug>/select/<row_id>', methods=['POST'])
def editor_select(slug, row_id):
    return run_editor_action(slug, lambda editor: editor.select(row_id))


@admin_bp.route('/<slug>/edit', methods=['POST'])
def editor_start_edit(slug):
    return run_editor_action(slug, lambda editor: editor.start_edit())


@admin_bp.route('/<slug>/new', methods=['POST'])
def editor_create_new(slug):
    return run_editor_action(slug, lambda editor: editor.create_new())


@admin_bp.route('/<slug>/cancel', methods=['POST'])
def editor_cancel(slug):
    return run_editor_action(slug, lambda editor: editor.cancel())


def _attach_posted_image(editor):
    file = request.files.get('image')
    if file and file.filename:
        editor.attach_image(file)


@admin_bp.route('/<slug>/save', methods=['POST'])
def editor_save(slug):
    def save(editor):
        _attach_posted_image(editor)
        editor.save()
    return run_editor_action(slug, save, read_form=True)


@admin_bp.route('/<slug>/image', methods=['POST'])
def editor_attach_image(slug):
    def attach(editor):
        file = request.files.get('image')
        if not file or not file.filename:
            editor.notify('warning', 'Please select an image file')
            return
        editor.attach_image(file)
    return run_editor_action(slug, attach, read_form=True, blur=True)


@admin_bp.route('/<slug>/image/remove', methods=['POST'])
def editor_detach_image(slug):
    return run_editor_action(slug, lambda editor: editor.detach_image(), read_form=True, blur=True)


@admin_bp.route('/<slug>/<row_id>/delete', methods=['POST'])
def editor_request_delete(slug, row_id):
    return run_editor_action(slug, lambda editor: editor.request_delete(row_id))


@admin_bp.route('/<slug>/delete/confirm', methods=['POST'])
def editor_confirm_delete(slug):
    return run_editor_action(slug, lambda editor: editor.confirm_delete())


@admin_bp.route('/<slug>/delete/cancel', methods=['POST'])
def editor_cancel_delete(slug):
    return run_editor_action(slug, lambda editor: editor.cancel_delete())


@admin_bp.route('/<slug>/discard/confirm', methods=['POST'])
def editor_confirm_discard(slug):
    return run_editor_action(slug, lambda editor: editor.confirm_discard())


@admin_bp.route('/<slug>/discard/cancel', methods=['POST'])
def editor_cancel_discard(slug):
    return run_editor_action(slug, lambda editor: editor.cancel_discard())


@admin_bp.route('/<slug>/<row_id>/edit')
def editor_open(slug, row_id):
    content_type = _content_type_or_404(slug)
    try:
        row = DataGateway().get(content_type['table'], row_id)
    except GatewayError:
        current_app.logger.exception('Failed to load %s row %s', content_type['table'], row_id)
        row = None
    if row is None:
        flash(f'{content_type["label"]} not found', 'danger')
        return redirect(url_for('admin.editor', slug=slug))

    def open_for_edit(editor):
        if editor.select(row_id):
            editor.start_edit()
    return run_editor_action(slug, open_for_edit)


@admin_bp.route('/staging/<token>')
def staged_image(token):
    states = (session.get(EDITOR_STATE_KEY) or {}).values()
    pending = next(
        (state['pending_image'] for state in states if (state.get('pending_image') or {}).get('token') == token),
        None,
    )
    staging = current_app.extensions['positivus.staging']
    path = staging.path(token)
    if not pending or not path or not os.path.exists(path):
        abort(404)
    response = send_from_directory(staging.root, token, mimetype=pending.get('mimetype') or None)
    response.headers['Content-Security-Policy'] = "default-src 'none'; sandbox"
    return response


# Contact submissions
@admin_bp.route('/contact-submissions')
def contact_submissions():
    status_filter = (request.args.get('status') or 'all').strip().lower()
    if status_filter != 'all' and status_filter not in CONTACT_STATUSES:
        status_filter = 'all'
    try:
        items = DataGateway().list('contact_submissions', order=('-created_at',))
    except GatewayError:
        current_app.logger.exception('Failed to load contact submissions')
        flash('Failed to load contact submissions', 'danger')
        items = []
    counts = {status: 0 for status in CONTACT_STATUSES}
    for item in items:
        counts[normalize_contact_status(item.get('status'))] += 1
    visible = [
        item for item in items
        if status_filter == 'all' or normalize_contact_status(item.get('status')) == status_filter
    ]
    return render_template(
        'admin/contact_submissions.html',
        items=visible,
        total=len(items),
        counts=counts,
        status_filter=status_filter,
        status_labels=CONTACT_STATUS_LABELS,
        statuses=CONTACT_STATUSES,
        time_ago=format_time_ago,
        normalize_status=normalize_contact_status,
    )


@admin_bp.route('/contact-submissions/<row_id>')
def contact_submission_view(row_id):
    gateway = DataGateway()
    try:
        item = gateway.get('contact_submissions', row_id)
    except GatewayError:
        current_app.logger.exception('Failed to load contact submission %s', row_id)
        item = None
    if item is None:
        flash('Contact submission not found', 'danger')
        return redirect(url_for('admin.contact_submissions'))
    if normalize_contact_status(item.get('status')) == CONTACT_STATUS_NEW:
        try:
            gateway.update('contact_submissions', row_id, {'status': CONTACT_STATUS_READ})
            item['status'] = CONTACT_STATUS_READ
        except GatewayError:
            current_app.logger.exception('Failed to mark contact submission %s as read', row_id)
    return render_template(
        'admin/contact_submission.html',
        item=item,
        status_labels=CONTACT_STATUS_LABELS,
        statuses=CONTACT_STATUSES,
        normalize_status=normalize_contact_status,
    )


@admin_bp.route('/contact-submissions/<row_id>/status', methods=['POST'])
def contact_submission_status(row_id):
    new_status = (request.form.get('status') or '').strip().lower()
    if new_status not in CONTACT_STATUSES:
        flash('Unknown status.', 'danger')
        return redirect(url_for('admin.contact_submissions'))
    try:
        DataGateway().update('contact_submissions', row_id, {'status': new_status})
    except GatewayError:
        current_app.logger.exception('Failed to update contact submission %s', row_id)
        flash('Failed to update status', 'danger')
    else:
        flash(f'Status updated to {CONTACT_STATUS_LABELS[new_status]}', 'success')
    next_status = request.form.get('return_status')
    if next_status == 'detail':
        return redirect(url_for('admin.contact_submission_view', row_id=row_id))
    return redirect(url_for('admin.contact_submissions', status=next_status or None))
