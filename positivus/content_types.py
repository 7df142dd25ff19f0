"""Declarative field schemas for every content type the admin editor manages.

Each entry names its table, the storage bucket for its image (if any), which
fields act as the sidebar title/description, and the ordered field list the
editor renders and validates. Field dicts use these keys:

``key``        column name
``label``      human label used in forms and notices
``type``       text | textarea | url | json | image | int | bool
``required``   reject blank values on save
``max_length`` reject longer text values on save
``min``/``max`` bounds for ``int`` fields (enforced on save, clamped on blur)
"""
import json

from .utils import is_valid_url

TEXT_TYPES = {'text', 'textarea', 'url', 'json', 'image'}
TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def _sort_order_field():
    return {'key': 'sort_order', 'label': 'Sort Order', 'type': 'int', 'required': True, 'min': 0}


def _active_field():
    return {'key': 'is_active', 'label': 'Active', 'type': 'bool'}


CONTENT_TYPES = {
    'services': {
        'label': 'Service',
        'plural': 'Services',
        'table': 'services',
        'bucket': 'service-icons',
        'image_field': 'icon_url',
        'title_field': 'title',
        'description_field': 'description',
        'fields': [
            {'key': 'title', 'label': 'Title', 'type': 'text', 'required': True, 'max_length': 100},
            {'key': 'description', 'label': 'Description', 'type': 'textarea', 'required': True, 'max_length': 500},
            {'key': 'icon_url', 'label': 'Icon', 'type': 'image'},
            _sort_order_field(),
            _active_field(),
        ],
    },
    'case_studies': {
        'label': 'Case Study',
        'plural': 'Case Studies',
        'table': 'case_studies',
        'bucket': 'case-study-covers',
        'image_field': 'cover_image_url',
        'title_field': 'title',
        'description_field': 'short_description',
        'fields': [
            {'key': 'title', 'label': 'Title', 'type': 'text', 'required': True, 'max_length': 100},
            {'key': 'short_description', 'label': 'Short Description', 'type': 'textarea', 'required': True, 'max_length': 500},
            {'key': 'cover_image_url', 'label': 'Cover Image', 'type': 'image'},
            {'key': 'link_url', 'label': 'Link URL', 'type': 'url', 'max_length': 500},
            _sort_order_field(),
            _active_field(),
        ],
    },
    'team_members': {
        'label': 'Team Member',
        'plural': 'Team Members',
        'table': 'team_members',
        'bucket': 'team-avatars',
        'image_field': 'avatar_url',
        'title_field': 'name',
        'description_field': 'role',
        'fields': [
            {'key': 'name', 'label': 'Name', 'type': 'text', 'required': True, 'max_length': 100},
            {'key': 'role', 'label': 'Role', 'type': 'text', 'required': True, 'max_length': 100},
            {'key': 'avatar_url', 'label': 'Avatar', 'type': 'image'},
            {'key': 'socials_json', 'label': 'Socials (JSON)', 'type': 'json'},
            _sort_order_field(),
            _active_field(),
        ],
    },
    'testimonials': {
        'label': 'Testimonial',
        'plural': 'Testimonials',
        'table': 'testimonials',
        'bucket': 'testimonial-avatars',
        'image_field': 'avatar_url',
        'title_field': 'name',
        'description_field': 'message',
        'defaults': {'rating': 5},
        'fields': [
            {'key': 'name', 'label': 'Name', 'type': 'text', 'required': True, 'max_length': 100},
            {'key': 'role_company', 'label': 'Role / Company', 'type': 'text', 'required': True, 'max_length': 100},
            {'key': 'message', 'label': 'Message', 'type': 'textarea', 'required': True, 'max_length': 500},
            {'key': 'avatar_url', 'label': 'Avatar', 'type': 'image'},
            {'key': 'rating', 'label': 'Rating', 'type': 'int', 'min': 1, 'max': 5},
            _sort_order_field(),
            _active_field(),
        ],
    },
    'working_processes': {
        'label': 'Working Process',
        'plural': 'Working Processes',
        'table': 'working_processes',
        'bucket': None,
        'image_field': None,
        'title_field': 'title',
        'description_field': 'description',
        'fields': [
            {'key': 'step_no', 'label': 'Step Number', 'type': 'int', 'required': True, 'min': 1},
            {'key': 'title', 'label': 'Title', 'type': 'text', 'required': True, 'max_length': 100},
            {'key': 'description', 'label': 'Description', 'type': 'textarea', 'required': True, 'max_length': 500},
            _sort_order_field(),
            _active_field(),
        ],
    },
}

# URL segments are hyphenated, table names use underscores.
SLUG_TO_TYPE = {key.replace('_', '-'): key for key in CONTENT_TYPES}


def get_content_type(key):
    return CONTENT_TYPES.get(key) or CONTENT_TYPES.get(SLUG_TO_TYPE.get(key, ''))


def content_type_slug(content_type):
    return content_type['table'].replace('_', '-')


def get_field(content_type, key):
    for field in content_type['fields']:
        if field['key'] == key:
            return field
    return None


def draft_defaults(content_type, item_count):
    """Field values for a fresh draft in a list that already holds ``item_count`` rows."""
    draft = {}
    for field in content_type['fields']:
        if field['type'] == 'bool':
            draft[field['key']] = False
        elif field['type'] == 'int':
            draft[field['key']] = None
        else:
            draft[field['key']] = ''
    draft['sort_order'] = item_count
    draft['is_active'] = False
    if get_field(content_type, 'step_no'):
        draft['step_no'] = item_count + 1
    draft.update(content_type.get('defaults', {}))
    return draft


def form_values(content_type, row):
    """Copy the editable fields out of a stored row."""
    values = {}
    for field in content_type['fields']:
        value = row.get(field['key'])
        if value is None and field['type'] in TEXT_TYPES:
            value = ''
        values[field['key']] = value
    return values


def parse_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in TRUE_VALUES
    return bool(value)


def parse_int_value(value):
    """Return an int, None for a blank value, or raise ValueError."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    return int(text)


def clamp_field(field, value):
    """Blur-time normalization: numeric fields are pulled into their bounds."""
    if field['type'] != 'int':
        return value
    try:
        number = parse_int_value(value)
    except ValueError:
        number = None
    if number is None:
        if not field.get('required'):
            return None
        number = field.get('min', 0)
    if 'min' in field and number < field['min']:
        number = field['min']
    if 'max' in field and number > field['max']:
        number = field['max']
    return number


def validate_field(field, value):
    """Return ``(clean_value, error_message_or_None)`` for one field."""
    label = field['label']
    kind = field['type']
    if kind == 'bool':
        return parse_bool(value), None

    if kind == 'int':
        try:
            number = parse_int_value(value)
        except ValueError:
            return value, f'{label} must be a whole number'
        if number is None:
            if field.get('required'):
                return None, f'{label} is required'
            return None, None
        low, high = field.get('min'), field.get('max')
        if low is not None and high is not None and not low <= number <= high:
            return number, f'{label} must be between {low} and {high}'
        if low is not None and number < low:
            return number, f'{label} must be at least {low}'
        if high is not None and number > high:
            return number, f'{label} must be at most {high}'
        return number, None

    text = '' if value is None else str(value).strip()
    if not text:
        if field.get('required'):
            return '', f'{label} is required'
        return None, None
    max_length = field.get('max_length')
    if max_length and len(text) > max_length:
        return text, f'{label} must be {max_length} characters or fewer'
    if kind == 'url' and not is_valid_url(text):
        return text, f'{label} must be a valid URL'
    if kind == 'json':
        try:
            json.loads(text)
        except (TypeError, ValueError):
            return text, f'{label} must be valid JSON'
    return text, None


def validate_form(content_type, values):
    """Validate a form buffer. Returns ``(row, errors)`` where ``errors`` maps field key to message."""
    row = {}
    errors = {}
    for field in content_type['fields']:
        clean, error = validate_field(field, values.get(field['key']))
        row[field['key']] = clean
        if error:
            errors[field['key']] = error
    return row, errors
