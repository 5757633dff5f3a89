"""Minimal WSGI request handler satisfying the proxy collaborator contract."""

import logging

from cryptography.hazmat.primitives.asymmetric import ec
from flask import Flask, jsonify

from tesla_http_proxy.errors import HandlerError

logger = logging.getLogger(__name__)

# Seconds allowed for a command round trip.
DEFAULT_TIMEOUT = 10.0


class Proxy:
    """WSGI callable backed by Flask, safe to share between request threads."""

    def __init__(self, private_key: ec.EllipticCurvePrivateKey, cache_size: int):
        self._private_key = private_key
        self.cache_size = cache_size
        self.timeout = DEFAULT_TIMEOUT
        self.app = self._create_app()

    def _create_app(self) -> Flask:
        app = Flask(__name__)

        @app.route("/health")
        def health():
            return jsonify({
                "status": "ok",
                "tls": False,
                "timeout": self.timeout,
                "cache_size": self.cache_size,
            })

        return app

    def __call__(self, environ, start_response):
        return self.app(environ, start_response)


def new_proxy(private_key, cache_size: int) -> Proxy:
    """Build the request handler from a P-256 key and a session-cache bound."""
    if not isinstance(private_key, ec.EllipticCurvePrivateKey) or not isinstance(
        private_key.curve, ec.SECP256R1
    ):
        raise HandlerError("private key must be a NIST P-256 elliptic-curve key")
    if cache_size <= 0:
        raise HandlerError(f"cache size must be positive, got {cache_size}")

    logger.debug("Proxy created with session cache size %d", cache_size)
    return Proxy(private_key, cache_size)
