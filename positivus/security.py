"""Request hardening: CSRF tokens, request ids, CSP nonces and response headers."""
import re
import secrets
from urllib.parse import urlparse

from flask import abort, g, request, session
from markupsafe import Markup, escape

CSRF_SESSION_KEY = '_csrf_token'
CSRF_HEADER = 'X-CSRF-Token'
CSRF_FAILURE = 'Invalid or missing CSRF token.'
MUTATING_METHODS = frozenset({'POST', 'PUT', 'PATCH', 'DELETE'})
REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{8,80}$")

STATIC_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Permissions-Policy': 'geolocation=(), microphone=(), camera=()',
    'Cross-Origin-Resource-Policy': 'same-origin',
    'Cross-Origin-Opener-Policy': 'same-origin',
}
NO_STORE_HEADERS = {
    'Cache-Control': 'no-store, no-cache, must-revalidate, max-age=0',
    'Pragma': 'no-cache',
    'Expires': '0',
}


def get_csrf_token():
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = session[CSRF_SESSION_KEY] = secrets.token_urlsafe(32)
    return token


def csrf_input():
    return Markup('<input type="hidden" name="_csrf_token" value="%s">') % escape(get_csrf_token())


def get_csp_nonce():
    if not getattr(g, 'csp_nonce', ''):
        g.csp_nonce = secrets.token_urlsafe(16)
    return g.csp_nonce


def content_security_policy(nonce, upgrade=False):
    directives = [
        "default-src 'self'",
        "base-uri 'self'",
        "frame-ancestors 'none'",
        "form-action 'self'",
        "object-src 'none'",
        "img-src 'self' data: https:",
        f"script-src 'self' 'nonce-{nonce}'",
        f"style-src 'self' 'nonce-{nonce}' https://fonts.googleapis.com",
        "font-src 'self' data: https://fonts.gstatic.com",
        "connect-src 'self'",
    ]
    if upgrade:
        directives.append('upgrade-insecure-requests')
    return '; '.join(directives)


def safe_referrer_path(fallback):
    """Return the referrer as a same-origin path, or ``fallback``."""
    referrer = (request.referrer or '').strip()
    if not referrer:
        return fallback
    parsed = urlparse(referrer)
    if parsed.scheme not in ('', 'http', 'https') or parsed.netloc not in ('', request.host):
        return fallback
    path = parsed.path or '/'
    if not path.startswith('/'):
        return fallback
    return f'{path}?{parsed.query}' if parsed.query else path


def _hsts_value(config):
    value = f"max-age={max(0, int(config.get('HSTS_MAX_AGE', 31536000)))}"
    if config.get('HSTS_INCLUDE_SUBDOMAINS', True):
        value += '; includeSubDomains'
    return value


def init_security(app):
    storage_prefix = app.config['STORAGE_URL_PREFIX'] + '/'

    @app.before_request
    def tag_request():
        incoming = (request.headers.get('X-Request-ID') or '').strip()
        g.request_id = incoming if REQUEST_ID_RE.match(incoming) else secrets.token_hex(16)
        get_csp_nonce()

    @app.before_request
    def check_csrf():
        if request.method not in MUTATING_METHODS:
            return None
        expected = session.get(CSRF_SESSION_KEY)
        provided = request.form.get(CSRF_SESSION_KEY) or request.headers.get(CSRF_HEADER)
        if not (expected and provided and secrets.compare_digest(expected, provided)):
            abort(400, description=CSRF_FAILURE)
        return None

    @app.after_request
    def harden_response(response):
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        for name, value in STATIC_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.is_secure and app.config.get('HSTS_ENABLED', True):
            response.headers.setdefault('Strict-Transport-Security', _hsts_value(app.config))
        if request.path.startswith('/admin'):
            response.headers.setdefault('X-Robots-Tag', 'noindex, nofollow, noarchive')

        cacheable = response.status_code in (200, 304)
        if cacheable and request.path.startswith('/static/'):
            response.headers['Cache-Control'] = 'public, max-age=31536000, immutable'
        elif cacheable and request.path.startswith(storage_prefix):
            response.headers['Cache-Control'] = 'public, max-age=604800'

        if (response.content_type or '').startswith('text/html'):
            response.headers.update(NO_STORE_HEADERS)
            response.headers['Content-Security-Policy'] = content_security_policy(
                get_csp_nonce(), upgrade=request.is_secure,
            )
        return response
