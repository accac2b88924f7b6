"""HTTP front end for the URL shortener.

Two routes: ``/`` renders the start page and ``/shorten`` turns the
``long_url`` form field into a short URL.
"""

import logging
import socket
import sys
from typing import Any, Callable, Mapping, Optional

from flask import Blueprint, Flask, Response, current_app, render_template, request
from jinja2 import TemplateError

from shortener.codes import CodeGenerator, ShortCodeAllocator, build_short_url
from shortener.config import DefaultConfig
from shortener.errors import ShortenerError
from shortener.store import Deadline, UrlStore

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal server error"

bp = Blueprint("shortener", __name__)


def text_response(body: str, status: int = 200) -> Response:
    """Plain text response with the given status."""
    return Response(body, status=status, mimetype="text/plain")


@bp.route("/", methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"])
def index():
    """Start page with the shorten form."""
    try:
        return render_template("index.html")
    except TemplateError as exc:
        logger.exception(f"Error executing template: {exc}")
        return text_response(INTERNAL_ERROR, 500)


@bp.route("/shorten", methods=["POST"])
def shorten():
    """Create a short URL from the long_url field (body first, then query)."""
    long_url = request.form.get("long_url", request.args.get("long_url", ""))
    allocator: ShortCodeAllocator = current_app.extensions["shortener"]

    deadline = Deadline(current_app.config["REQUEST_TIMEOUT"])
    code = allocator.allocate(long_url, deadline)

    short_url = build_short_url(current_app.config["SHORT_URL_BASE"], code)
    return text_response(f"Short URL: {short_url}")


@bp.app_errorhandler(405)
def method_not_allowed(error):
    """Plain text 405 that keeps the Allow header."""
    response = text_response("Method not allowed", 405)
    response.headers["Allow"] = ", ".join(error.valid_methods or [])
    return response


@bp.app_errorhandler(ShortenerError)
def shortener_error(error: ShortenerError):
    """Log the failure and answer with an opaque 500."""
    logger.error(f"Error shortening URL: {error!r}")
    return text_response(INTERNAL_ERROR, 500)


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    store: Optional[UrlStore] = None,
    generate: Optional[Callable[[], str]] = None,
) -> Flask:
    """Build the application.

    Args:
        config: Overrides applied after defaults and SHORTENER_* variables
        store: Storage to use instead of one built from DB_PATH
        generate: Code generator; a time-seeded CodeGenerator by default

    Raises:
        StorageError: the database cannot be opened or the schema created
    """
    app = Flask(__name__)
    app.config.from_object(DefaultConfig)
    app.config.from_prefixed_env("SHORTENER")
    if config:
        app.config.update(config)

    if store is None:
        store = UrlStore(
            app.config["DB_PATH"],
            max_connections=app.config["MAX_OPEN_CONNS"],
            pool_timeout=app.config["REQUEST_TIMEOUT"],
        )
    store.create_schema()

    app.extensions["shortener"] = ShortCodeAllocator(store, generate or CodeGenerator())
    app.extensions["shortener.store"] = store
    app.register_blueprint(bp)
    return app


def check_port(host: str, port: int) -> None:
    """Raise OSError if host:port cannot be bound."""
    with socket.create_server((host, port)):
        pass


def main() -> None:
    """Console entry point: build the app and serve it."""
    logging.basicConfig(
        level=DefaultConfig.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        app = create_app()
    except ShortenerError as exc:
        logger.critical(f"Error opening database: {exc}")
        sys.exit(1)

    logging.getLogger().setLevel(app.config["LOG_LEVEL"])
    host, port = app.config["SERVER_HOST"], app.config["SERVER_PORT"]
    # app.run exits on bind failure without logging.
    try:
        check_port(host, port)
    except OSError as exc:
        logger.critical(f"Cannot listen on port {port}: {exc}")
        sys.exit(1)

    logger.info(f"Server listening on port {port}")
    app.run(host=host, port=port, threaded=True)


if __name__ == "__main__":
    main()
