import json
import logging

from flask import g, has_request_context, request

_sentry_ready = False


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, tagged with the current request when there is one."""

    def format(self, record):
        entry = {
            'time': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if has_request_context():
            entry['request_id'] = getattr(g, 'request_id', '')
            entry['method'] = request.method
            entry['path'] = request.path
            entry['remote_ip'] = request.remote_addr
        if record.exc_info:
            entry['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(app):
    # app.logger is named "positivus", so module loggers such as positivus.editor propagate into it.
    level = logging.getLevelName(str(app.config.get('LOG_LEVEL') or 'INFO').upper())
    app.logger.setLevel(level if isinstance(level, int) else logging.INFO)
    if app.config.get('LOG_JSON', True):
        formatter = JsonLogFormatter()
        for handler in app.logger.handlers:
            handler.setFormatter(formatter)


def init_sentry(app):
    global _sentry_ready
    dsn = (app.config.get('SENTRY_DSN') or '').strip()
    if _sentry_ready or not dsn:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=float(app.config.get('SENTRY_TRACES_SAMPLE_RATE') or 0.0),
            environment=app.config.get('SENTRY_ENVIRONMENT') or None,
        )
    except Exception:
        app.logger.exception('Sentry could not be initialised.')
        return
    _sentry_ready = True
    app.logger.info('Sentry error reporting enabled.')
