import os
from urllib.parse import urlparse

PACKAGE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env(name, default=''):
    return (os.environ.get(name) or default).strip()


def _as_bool(value, default=False):
    if value is None or str(value).strip() == '':
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def database_url():
    url = _env('DATABASE_URL')
    if not url:
        return 'sqlite:///' + os.path.join(PACKAGE_DIR, 'positivus.db')
    scheme, _, rest = url.partition('://')
    # Heroku-style URLs still use the scheme SQLAlchemy 1.4 dropped.
    if scheme == 'postgres':
        return 'postgresql://' + rest
    return url


def engine_options(url):
    """Connection pool settings; sqlite gets none."""
    if url.startswith('sqlite'):
        return {}
    options = {'pool_pre_ping': True, 'pool_recycle': 300}
    if urlparse(url).scheme.startswith('postgresql'):
        timeout = max(1, _as_int(_env('DB_CONNECT_TIMEOUT_SECONDS'), 5))
        statement_ms = max(1000, _as_int(_env('DB_STATEMENT_TIMEOUT_MS'), 8000))
        options['connect_args'] = {
            'connect_timeout': timeout,
            'options': f'-c statement_timeout={statement_ms}',
        }
    return options


def data_folder(env_name, dirname):
    return _env(env_name) or os.path.join(PACKAGE_DIR, dirname)


def secure_cookies_default():
    return _env('PREFERRED_URL_SCHEME').lower() == 'https' or _env('FLASK_ENV').lower() == 'production'


class Config:
    SECRET_KEY = _env('SECRET_KEY')
    SQLALCHEMY_DATABASE_URI = database_url()
    SQLALCHEMY_ENGINE_OPTIONS = engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Storage buckets are sub-folders of UPLOAD_FOLDER; staged images wait in STAGING_FOLDER until save.
    UPLOAD_FOLDER = data_folder('UPLOAD_FOLDER', 'uploads')
    STAGING_FOLDER = data_folder('STAGING_FOLDER', 'staging')
    STORAGE_URL_PREFIX = _env('STORAGE_URL_PREFIX', '/storage').rstrip('/')
    MAX_CONTENT_LENGTH = _as_int(_env('MAX_CONTENT_LENGTH'), 16 * 1024 * 1024)
    MAX_IMAGE_BYTES = _as_int(_env('MAX_IMAGE_BYTES'), 5 * 1024 * 1024)
    MAX_UPLOAD_IMAGE_PIXELS = _as_int(_env('MAX_UPLOAD_IMAGE_PIXELS'), 40_000_000)
    ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
    HOMEPAGE_FETCH_WORKERS = max(1, _as_int(_env('HOMEPAGE_FETCH_WORKERS'), 5))

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = _as_bool(os.environ.get('SESSION_COOKIE_SECURE'), secure_cookies_default())
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = SESSION_COOKIE_SECURE
    PREFERRED_URL_SCHEME = _env('PREFERRED_URL_SCHEME') or ('https' if SESSION_COOKIE_SECURE else 'http')
    TRUST_PROXY_HEADERS = _as_bool(os.environ.get('TRUST_PROXY_HEADERS'))
    HSTS_ENABLED = _as_bool(os.environ.get('HSTS_ENABLED'), True)
    HSTS_MAX_AGE = _as_int(_env('HSTS_MAX_AGE'), 31536000)
    HSTS_INCLUDE_SUBDOMAINS = _as_bool(os.environ.get('HSTS_INCLUDE_SUBDOMAINS'), True)

    SENTRY_DSN = _env('SENTRY_DSN')
    SENTRY_ENVIRONMENT = _env('SENTRY_ENVIRONMENT')
    SENTRY_TRACES_SAMPLE_RATE = _as_float(_env('SENTRY_TRACES_SAMPLE_RATE'), 0.0)
    LOG_JSON = _as_bool(os.environ.get('LOG_JSON'), True)
    LOG_LEVEL = _env('LOG_LEVEL', 'INFO').upper()
