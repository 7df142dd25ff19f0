"""Data gateway over the content tables and the image buckets.

Every editor write goes through :class:`DataGateway` (rows) or
:class:`ObjectStorage` (bucket files). Both hand back plain values and raise
:class:`GatewayError` on any failure, so callers never see ORM objects or
driver exceptions.
"""
import logging
import os
import re
import uuid

from PIL import Image, UnidentifiedImageError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from .models import TABLE_MODELS, db, row_to_dict
from .utils import utc_now_naive

logger = logging.getLogger(__name__)

SERVER_ASSIGNED_COLUMNS = {'id', 'created_at', 'updated_at'}
BUCKET_NAME_RE = re.compile(r'^[a-z0-9][a-z0-9-]{0,62}$')
EXTENSION_MIME_TYPES = {
    'png': {'image/png'},
    'jpg': {'image/jpeg'},
    'jpeg': {'image/jpeg'},
    'gif': {'image/gif'},
    'webp': {'image/webp'},
}
MIME_EXTENSIONS = {
    'image/png': 'png',
    'image/jpeg': 'jpg',
    'image/gif': 'gif',
    'image/webp': 'webp',
}


class GatewayError(Exception):
    """A gateway call failed; the message is safe to log."""


class DataGateway:
    def __init__(self, session=None):
        self.session = session or db.session

    def _model(self, table):
        model = TABLE_MODELS.get(table)
        if model is None:
            raise GatewayError(f'Unknown table "{table}".')
        return model

    def _check_columns(self, model, values):
        columns = {column.name for column in model.__table__.columns}
        unknown = sorted(set(values) - columns)
        if unknown:
            raise GatewayError(f'Unknown column(s) for {model.__tablename__}: {", ".join(unknown)}')

    def list(self, table, order=('sort_order',), filters=None):
        """Return rows as dicts. ``order`` names columns, ``-name`` sorts descending."""
        model = self._model(table)
        try:
            query = model.query
            for key, value in (filters or {}).items():
                self._check_columns(model, [key])
                query = query.filter(getattr(model, key) == value)
            for name in order or ():
                column_name = name.lstrip('-')
                self._check_columns(model, [column_name])
                column = getattr(model, column_name)
                query = query.order_by(column.desc() if name.startswith('-') else column.asc())
            return [row_to_dict(item) for item in query.all()]
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise GatewayError(f'Failed to list {table}.') from exc

    def get(self, table, row_id):
        model = self._model(table)
        try:
            item = self.session.get(model, row_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise GatewayError(f'Failed to load {table} row {row_id}.') from exc
        return row_to_dict(item) if item is not None else None

    def insert(self, table, row):
        model = self._model(table)
        values = {key: value for key, value in row.items() if key not in SERVER_ASSIGNED_COLUMNS}
        self._check_columns(model, values)
        item = model(**values)
        self.session.add(item)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise GatewayError(f'Failed to insert into {table}.') from exc
        logger.info('Inserted %s row %s', table, item.id)
        return row_to_dict(item)

    def update(self, table, row_id, patch):
        model = self._model(table)
        values = {key: value for key, value in patch.items() if key not in {'id', 'created_at'}}
        self._check_columns(model, values)
        try:
            item = self.session.get(model, row_id)
            if item is None:
                raise GatewayError(f'{table} row {row_id} does not exist.')
            for key, value in values.items():
                setattr(item, key, value)
            item.updated_at = values.get('updated_at') or utc_now_naive()
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise GatewayError(f'Failed to update {table} row {row_id}.') from exc
        logger.info('Updated %s row %s', table, row_id)
        return True

    def delete(self, table, row_id):
        model = self._model(table)
        try:
            item = self.session.get(model, row_id)
            if item is None:
                raise GatewayError(f'{table} row {row_id} does not exist.')
            self.session.delete(item)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise GatewayError(f'Failed to delete {table} row {row_id}.') from exc
        logger.info('Deleted %s row %s', table, row_id)
        return True


class ObjectStorage:
    """Filesystem-backed buckets: ``<root>/<bucket>/<key>``, public at ``<url_prefix>/<bucket>/<key>``."""

    def __init__(self, root, url_prefix='/storage', max_pixels=40_000_000, allowed_extensions=None):
        self.root = os.path.abspath(root)
        self.url_prefix = url_prefix.rstrip('/')
        self.max_pixels = max(1, int(max_pixels))
        self.allowed_extensions = set(allowed_extensions or EXTENSION_MIME_TYPES)

    @classmethod
    def from_config(cls, config):
        return cls(
            config['UPLOAD_FOLDER'],
            url_prefix=config.get('STORAGE_URL_PREFIX', '/storage'),
            max_pixels=config.get('MAX_UPLOAD_IMAGE_PIXELS', 40_000_000),
            allowed_extensions=config.get('ALLOWED_IMAGE_EXTENSIONS'),
        )

    def _bucket_dir(self, bucket):
        if not BUCKET_NAME_RE.match(bucket or ''):
            raise GatewayError(f'Invalid bucket name "{bucket}".')
        return os.path.join(self.root, bucket)

    def object_path(self, bucket, key):
        """Absolute path for ``key`` inside ``bucket``, or None when the key is unsafe."""
        bucket_dir = self._bucket_dir(bucket)
        raw_key = (key or '').strip()
        safe_key = secure_filename(raw_key)
        if not safe_key or safe_key != raw_key:
            return None
        full_path = os.path.abspath(os.path.join(bucket_dir, safe_key))
        if os.path.commonpath([bucket_dir, full_path]) != bucket_dir:
            return None
        return full_path

    def public_url(self, bucket, key):
        return f'{self.url_prefix}/{bucket}/{key}'

    def owns(self, bucket, url):
        return bool(url) and url.startswith(f'{self.url_prefix}/{bucket}/')

    def _stored_extension(self, file):
        """Extension for a verified image, derived from its MIME type; None when unsupported."""
        mime_type = (file.mimetype or '').split(';', 1)[0].strip().lower()
        allowed = {mime for extension in self.allowed_extensions for mime in EXTENSION_MIME_TYPES.get(extension, ())}
        if mime_type not in allowed:
            return None
        file.stream.seek(0)
        try:
            with Image.open(file.stream) as image:
                width, height = image.size
                if width < 1 or height < 1 or (width * height) > self.max_pixels:
                    return None
                if Image.MIME.get(image.format) != mime_type:
                    return None
                image.verify()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError):
            return None
        finally:
            file.stream.seek(0)
        return MIME_EXTENSIONS[mime_type]

    def upload(self, bucket, file):
        bucket_dir = self._bucket_dir(bucket)
        original = getattr(file, 'filename', '') or 'image'
        extension = self._stored_extension(file)
        if extension is None:
            raise GatewayError(f'Rejected unsafe or unsupported image "{original}".')
        safe_name = secure_filename(original)
        stem = safe_name.rsplit('.', 1)[0] if '.' in safe_name else 'image'
        filename = f'{stem[:120] or "image"}.{extension}'
        key = f'{uuid.uuid4().hex[:16]}_{filename}'
        try:
            os.makedirs(bucket_dir, exist_ok=True)
            file.save(os.path.join(bucket_dir, key))
        except OSError as exc:
            raise GatewayError(f'Failed to store "{filename}" in bucket {bucket}.') from exc
        logger.info('Uploaded %s to bucket %s', key, bucket)
        return self.public_url(bucket, key)

    def remove(self, bucket, url):
        parts = (url or '').split(f'/{bucket}/', 1)
        if len(parts) < 2:
            raise GatewayError('Invalid URL format')
        full_path = self.object_path(bucket, parts[1])
        if not full_path:
            raise GatewayError('Invalid URL format')
        try:
            if os.path.exists(full_path):
                os.remove(full_path)
        except OSError as exc:
            raise GatewayError(f'Failed to remove {parts[1]} from bucket {bucket}.') from exc
        logger.info('Removed %s from bucket %s', parts[1], bucket)
        return True
