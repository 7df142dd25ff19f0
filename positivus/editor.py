"""Master-detail editor shared by every admin content type.

A :class:`CrudEditor` owns the row list for one content type, the current
selection, the detail form and the two confirmation gates (delete and
discard-changes). Writes go through the data gateway and object storage; the
row list is only changed by the synchronizer after a write succeeds.

The editor is rebuilt on every request from ``to_state()`` output kept in the
session, so everything in that state is plain JSON-friendly data.
"""
import logging

from .content_types import draft_defaults, form_values, get_field, clamp_field, validate_form
from .gateway import GatewayError
from .gates import ConfirmationGate
from .images import ImageRejected, PendingImage
from .synchronizer import apply_delete, apply_insert, apply_update
from .utils import utc_now_naive

logger = logging.getLogger(__name__)

NEW_ITEM_TARGET = '__new__'


class NoSelection:
    name = 'none'

    def to_dict(self):
        return {'name': self.name}


class Viewing:
    name = 'view'

    def to_dict(self):
        return {'name': self.name}


class Editing:
    name = 'edit'

    def __init__(self, snapshot):
        self.snapshot = dict(snapshot)

    def to_dict(self):
        return {'name': self.name, 'snapshot': self.snapshot}


class Creating:
    name = 'create'

    def __init__(self, previous_id=None):
        self.previous_id = previous_id

    def to_dict(self):
        return {'name': self.name, 'previous_id': self.previous_id}


def mode_from_dict(data):
    name = (data or {}).get('name')
    if name == Editing.name:
        return Editing(data.get('snapshot') or {})
    if name == Creating.name:
        return Creating(data.get('previous_id'))
    if name == Viewing.name:
        return Viewing()
    return NoSelection()


class CrudEditor:
    def __init__(self, content_type, gateway, storage=None, staging=None, items=None, now=utc_now_naive):
        self.content_type = content_type
        self.gateway = gateway
        self.storage = storage
        self.staging = staging
        self.now = now
        self.items = list(items or [])
        self.selected_id = None
        self.mode = NoSelection()
        self.form = {}
        self.errors = {}
        self.pending_image = None
        self.notices = []
        self.is_saving = False
        self.delete_gate = ConfirmationGate()
        self.discard_gate = ConfirmationGate()
        if self.items:
            self._show(self.items[0]['id'])

    # Loading and persistence

    @classmethod
    def load(cls, content_type, gateway, storage=None, staging=None, state=None, now=utc_now_naive):
        """Fetch the row list through the gateway and restore saved editor state."""
        items = gateway.list(content_type['table'], order=('sort_order', 'created_at'))
        editor = cls(content_type, gateway, storage, staging, items=items, now=now)
        if state:
            editor.restore(state)
        return editor

    def to_state(self):
        return {
            'mode': self.mode.to_dict(),
            'selected_id': self.selected_id,
            'form': self.form if self.is_mutable else {},
            'pending_image': self.pending_image.to_dict() if self.pending_image else None,
            'delete_target': self.delete_gate.target,
            'discard_target': self.discard_gate.target,
        }

    def restore(self, state):
        mode = mode_from_dict(state.get('mode'))
        selected_id = state.get('selected_id')
        if isinstance(mode, Creating):
            self.mode = mode
            self.selected_id = None
            self.form = dict(draft_defaults(self.content_type, len(self.items)))
            self.form.update(state.get('form') or {})
        elif selected_id and self.find(selected_id):
            self._show(selected_id)
            if isinstance(mode, Editing):
                self.mode = mode
                self.form = dict(state.get('form') or mode.snapshot)
        # A selection deleted elsewhere falls back to the first-row default.
        pending = PendingImage.from_dict(state.get('pending_image'))
        if self.is_mutable:
            self.pending_image = pending
        elif pending is not None and self.staging is not None:
            self.staging.discard(pending)
        if state.get('delete_target') and self.find(state['delete_target']):
            self.delete_gate.arm(state['delete_target'])
        discard_target = state.get('discard_target')
        if self.is_mutable and (discard_target == NEW_ITEM_TARGET or self.find(discard_target)):
            self.discard_gate.arm(discard_target)

    # Queries

    @property
    def label(self):
        return self.content_type['label']

    @property
    def is_mutable(self):
        return isinstance(self.mode, (Editing, Creating))

    @property
    def selected(self):
        return self.find(self.selected_id)

    def find(self, row_id):
        if not row_id:
            return None
        for item in self.items:
            if item.get('id') == row_id:
                return item
        return None

    def draft_has_content(self):
        if not isinstance(self.mode, Creating):
            return False
        keys = (self.content_type['title_field'], self.content_type['description_field'])
        return any(str(self.form.get(key) or '').strip() for key in keys)

    def sidebar_items(self, query=''):
        title_key = self.content_type['title_field']
        description_key = self.content_type['description_field']
        image_key = self.content_type.get('image_field')
        needle = (query or '').strip().lower()
        entries = []
        if isinstance(self.mode, Creating):
            entries.append({
                'id': None,
                'title': (self.form.get(title_key) or '').strip() or f'New {self.label}',
                'description': (self.form.get(description_key) or '').strip(),
                'thumbnail': None,
                'status': 'New',
                'selected': True,
            })
        for item in self.items:
            title = item.get(title_key) or ''
            description = item.get(description_key) or ''
            if needle and needle not in title.lower() and needle not in description.lower():
                continue
            entries.append({
                'id': item['id'],
                'title': title,
                'description': description,
                'thumbnail': item.get(image_key) if image_key else None,
                'status': 'Active' if item.get('is_active') else 'Draft',
                'selected': item['id'] == self.selected_id,
            })
        return entries

    def notify(self, category, message):
        self.notices.append((category, message))

    # Selection

    def _show(self, row_id):
        row = self.find(row_id)
        if row is None:
            self.selected_id = None
            self.mode = NoSelection()
            self.form = {}
        else:
            self.selected_id = row_id
            self.mode = Viewing()
            self.form = form_values(self.content_type, row)
        self.errors = {}

    def _drop_pending_image(self):
        if self.pending_image is not None and self.staging is not None:
            self.staging.discard(self.pending_image)
        self.pending_image = None

    def select(self, row_id):
        """Show another row; unsaved edits arm the discard gate instead of switching."""
        if self.is_saving or self.find(row_id) is None:
            return False
        if isinstance(self.mode, Editing) or self.draft_has_content():
            return self.discard_gate.arm(row_id)
        self._drop_pending_image()
        self._show(row_id)
        return True

    def confirm_discard(self):
        return self.discard_gate.confirm(self._discard_and_go)

    def cancel_discard(self):
        return self.discard_gate.cancel()

    def _discard_and_go(self, target):
        self._drop_pending_image()
        if target == NEW_ITEM_TARGET:
            self._show(self.selected_id)
            return self.create_new()
        if self.find(target) is None:
            return False
        self._show(target)
        return True

    # Mode transitions

    def start_edit(self):
        if not isinstance(self.mode, Viewing) or self.selected is None:
            return False
        snapshot = form_values(self.content_type, self.selected)
        self.mode = Editing(snapshot)
        self.form = dict(snapshot)
        self.errors = {}
        return True

    def create_new(self):
        if self.is_saving:
            return False
        if isinstance(self.mode, Creating):
            return True
        if isinstance(self.mode, Editing):
            return self.discard_gate.arm(NEW_ITEM_TARGET)
        self.mode = Creating(previous_id=self.selected_id)
        self.selected_id = None
        self.form = draft_defaults(self.content_type, len(self.items))
        self.errors = {}
        return True

    def cancel(self):
        if self.is_saving:
            return False
        if isinstance(self.mode, Editing):
            self._drop_pending_image()
            self.form = dict(self.mode.snapshot)
            self.mode = Viewing()
            self.errors = {}
            return True
        if isinstance(self.mode, Creating):
            self._drop_pending_image()
            previous_id = self.mode.previous_id
            if not self.find(previous_id):
                previous_id = self.items[0]['id'] if self.items else None
            self.discard_gate.cancel()
            self._show(previous_id)
            return True
        return False

    # Field mutation

    def set_field(self, key, value):
        if not self.is_mutable or get_field(self.content_type, key) is None:
            return False
        self.form[key] = value
        self.errors.pop(key, None)
        return True

    def blur_field(self, key):
        field = get_field(self.content_type, key)
        if not self.is_mutable or field is None:
            return False
        self.form[key] = clamp_field(field, self.form.get(key))
        return True

    def attach_image(self, file):
        image_field = self.content_type.get('image_field')
        if not self.is_mutable or not image_field or self.staging is None:
            return False
        try:
            pending = self.staging.stage(file)
        except ImageRejected as exc:
            self.notify('warning', str(exc))
            return False
        self._drop_pending_image()
        self.pending_image = pending
        self.form[image_field] = ''
        return True

    def detach_image(self):
        image_field = self.content_type.get('image_field')
        if not self.is_mutable or not image_field:
            return False
        self._drop_pending_image()
        self.form[image_field] = ''
        return True

    # Writes

    def _validated_row(self):
        row, errors = validate_form(self.content_type, self.form)
        if errors:
            self.errors = errors
            self.notify('danger', next(iter(errors.values())))
            return None
        self.errors = {}
        return row

    def _upload_pending_image(self, row):
        """Upload the pending image (if any) and put its URL into ``row``."""
        image_field = self.content_type.get('image_field')
        if not image_field:
            return row
        if self.pending_image is not None:
            with self.staging.open(self.pending_image) as file:
                row[image_field] = self.storage.upload(self.content_type['bucket'], file)
        else:
            row[image_field] = row.get(image_field) or None
        return row

    def _forget_missing_image(self, exc):
        logger.warning('Staged image %s vanished before save', self.pending_image.token)
        self.pending_image = None
        self.notify('warning', str(exc))

    def _remove_stored_image(self, url):
        bucket = self.content_type.get('bucket')
        if not bucket or self.storage is None or not self.storage.owns(bucket, url):
            return
        try:
            self.storage.remove(bucket, url)
        except GatewayError:
            logger.warning('Could not remove replaced image %s from %s', url, bucket, exc_info=True)

    def save(self):
        if self.is_saving:
            return False
        if isinstance(self.mode, Editing):
            return self._save_edit()
        if isinstance(self.mode, Creating):
            return self._save_new()
        return False

    def _save_edit(self):
        row = self._validated_row()
        if row is None:
            return False
        table = self.content_type['table']
        previous = dict(self.selected or {})
        self.is_saving = True
        try:
            try:
                patch = self._upload_pending_image(row)
            except ImageRejected as exc:
                self._forget_missing_image(exc)
                return False
            except GatewayError:
                logger.exception('Image upload failed for %s row %s', table, self.selected_id)
                self.notify('danger', 'Failed to upload image')
                return False
            now = self.now()
            patch['updated_at'] = now
            try:
                self.gateway.update(table, self.selected_id, patch)
            except GatewayError:
                logger.exception('Failed to save %s row %s', table, self.selected_id)
                self.notify('danger', 'Failed to save changes')
                return False
        finally:
            self.is_saving = False

        self.items = apply_update(self.items, self.selected_id, patch, now)
        self._drop_pending_image()
        image_field = self.content_type.get('image_field')
        if image_field and previous.get(image_field) and previous.get(image_field) != patch.get(image_field):
            self._remove_stored_image(previous[image_field])
        self._show(self.selected_id)
        self.notify('success', 'Changes saved successfully')
        return True

    def _save_new(self):
        row = self._validated_row()
        if row is None:
            return False
        table = self.content_type['table']
        noun = self.label.lower()
        self.is_saving = True
        try:
            try:
                row = self._upload_pending_image(row)
            except ImageRejected as exc:
                self._forget_missing_image(exc)
                return False
            except GatewayError:
                logger.exception('Image upload failed for new %s row', table)
                self.notify('danger', 'Failed to upload image')
                return False
            try:
                inserted = self.gateway.insert(table, row)
            except GatewayError:
                logger.exception('Failed to create %s row', table)
                self.notify('danger', f'Failed to create {noun}')
                return False
        finally:
            self.is_saving = False

        self.items = apply_insert(self.items, inserted)
        self._drop_pending_image()
        self.discard_gate.cancel()
        self._show(inserted['id'])
        self.notify('success', f'{self.label} created successfully')
        return True

    def request_delete(self, row_id):
        if self.is_saving or self.find(row_id) is None:
            return False
        return self.delete_gate.arm(row_id)

    def cancel_delete(self):
        return self.delete_gate.cancel()

    def confirm_delete(self):
        return self.delete_gate.confirm(self._delete)

    def _delete(self, row_id):
        table = self.content_type['table']
        noun = self.label.lower()
        row = self.find(row_id)
        if row is None:
            return False
        try:
            self.gateway.delete(table, row_id)
        except GatewayError:
            logger.exception('Failed to delete %s row %s', table, row_id)
            self.notify('danger', f'Failed to delete {noun}')
            return False

        was_selected = row_id == self.selected_id
        self.items, self.selected_id = apply_delete(self.items, row_id, self.selected_id)
        if was_selected:
            self._drop_pending_image()
            self.discard_gate.cancel()
            self._show(self.selected_id)
        image_field = self.content_type.get('image_field')
        if image_field and row.get(image_field):
            self._remove_stored_image(row[image_field])
        self.notify('success', f'{self.label} deleted successfully')
        return True
