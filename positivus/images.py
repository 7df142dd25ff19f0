"""Pending images: files picked in the editor but not uploaded until save."""
import logging
import os
import re
import uuid
from contextlib import contextmanager

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .gateway import EXTENSION_MIME_TYPES

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r'^[a-f0-9]{32}$')


class ImageRejected(ValueError):
    """The selected file is not an acceptable image; the message is user-facing."""


def file_size(file):
    stream = file.stream
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


def accepted_mimetypes(extensions=None):
    extensions = EXTENSION_MIME_TYPES if extensions is None else extensions
    return {mimetype for extension in extensions for mimetype in EXTENSION_MIME_TYPES.get(extension, ())}


def validate_image_selection(mimetype, size, max_bytes, accepted=None):
    mimetype = (mimetype or '').split(';', 1)[0].strip().lower()
    if not mimetype.startswith('image/'):
        return 'Please select an image file'
    if accepted is not None and mimetype not in accepted:
        return 'Image must be a PNG, JPEG, GIF or WebP file'
    if size > max_bytes:
        return f'Image must be {max_bytes // (1024 * 1024)}MB or smaller'
    return None


class PendingImage:
    def __init__(self, token, filename, mimetype, size):
        self.token = token
        self.filename = filename
        self.mimetype = mimetype
        self.size = size

    def to_dict(self):
        return {'token': self.token, 'filename': self.filename, 'mimetype': self.mimetype, 'size': self.size}

    @classmethod
    def from_dict(cls, data):
        if not data or not _TOKEN_RE.match(str(data.get('token') or '')):
            return None
        return cls(data['token'], data.get('filename') or '', data.get('mimetype') or '', int(data.get('size') or 0))


class ImageStaging:
    """Holds pending image bytes on disk under ``root`` keyed by a random token."""

    def __init__(self, root, max_bytes=5 * 1024 * 1024, allowed_extensions=None):
        self.root = os.path.abspath(root)
        self.max_bytes = max_bytes
        # Only types object storage will take at save time.
        self.accepted = accepted_mimetypes(allowed_extensions)

    @classmethod
    def from_config(cls, config):
        return cls(
            config['STAGING_FOLDER'],
            max_bytes=config.get('MAX_IMAGE_BYTES', 5 * 1024 * 1024),
            allowed_extensions=config.get('ALLOWED_IMAGE_EXTENSIONS'),
        )

    def path(self, token):
        if not _TOKEN_RE.match(token or ''):
            return None
        return os.path.join(self.root, token)

    def stage(self, file):
        if not file or not getattr(file, 'filename', ''):
            raise ImageRejected('Please select an image file')
        size = file_size(file)
        error = validate_image_selection(file.mimetype, size, self.max_bytes, self.accepted)
        if error:
            raise ImageRejected(error)
        token = uuid.uuid4().hex
        os.makedirs(self.root, exist_ok=True)
        file.stream.seek(0)
        file.save(os.path.join(self.root, token))
        filename = secure_filename(file.filename) or 'image'
        logger.info('Staged pending image %s (%s, %d bytes)', token, filename, size)
        return PendingImage(token, filename, (file.mimetype or '').split(';', 1)[0].strip().lower(), size)

    @contextmanager
    def open(self, pending):
        """Yield the staged bytes as an upload-ready ``FileStorage``."""
        path = self.path(pending.token)
        try:
            stream = open(path, 'rb') if path else None
        except OSError:
            stream = None
        if stream is None:
            raise ImageRejected('Image is no longer available, please re-attach')
        with stream:
            yield FileStorage(stream=stream, filename=pending.filename, content_type=pending.mimetype)

    def discard(self, pending):
        if pending is None:
            return
        path = self.path(pending.token)
        if path and os.path.exists(path):
            try:
                os.remove(path)
            except OSError:
                logger.warning('Could not remove staged image %s', pending.token)
