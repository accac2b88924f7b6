"""Default settings.

Every key can be overridden with a ``SHORTENER_`` prefixed environment
variable (e.g. ``SHORTENER_DB_PATH=/var/lib/shortener/urls.db``) or by the
mapping passed to :func:`shortener.app.create_app`.
"""


class DefaultConfig:
    DB_PATH = "./urls.db"
    SERVER_HOST = "0.0.0.0"
    SERVER_PORT = 8080
    SHORT_URL_BASE = "http://short.url/"

    # Pool size; extra requests wait for a free connection.
    MAX_OPEN_CONNS = 10
    # Seconds a shorten request may spend on storage calls.
    REQUEST_TIMEOUT = 5.0

    LOG_LEVEL = "INFO"
