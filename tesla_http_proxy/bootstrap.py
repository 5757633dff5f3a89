"""Service bootstrap: resolve config, load the key, build the handler and listen."""

import enum
import logging
import socket
import sys

from werkzeug.serving import get_sockaddr, make_server, select_address_family

from tesla_http_proxy.config import SETTINGS, Config, resolve
from tesla_http_proxy.credentials import load_private_key
from tesla_http_proxy.errors import ConfigError, CredentialError, HandlerError
from tesla_http_proxy.proxy import new_proxy

CACHE_SIZE = 10000  # Number of cached vehicle sessions
LISTEN_BACKLOG = 128

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


class State(enum.Enum):
    UNSTARTED = "unstarted"
    CONFIG_RESOLVED = "config_resolved"
    CREDENTIAL_LOADED = "credential_loaded"
    HANDLER_CONSTRUCTED = "handler_constructed"
    LISTENING = "listening"
    STOPPED = "stopped"


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    logging.getLogger().setLevel(level)
    # werkzeug logs every request at INFO
    logging.getLogger("werkzeug").setLevel(logging.INFO if verbose else logging.WARNING)


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind and listen on host:port, raising OSError on failure."""
    family = select_address_family(host, port)
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind(get_sockaddr(host, port, family))
        sock.listen(LISTEN_BACKLOG)
    except OSError:
        sock.close()
        raise
    return sock


def serve_forever(app, host: str, port: int) -> None:
    """Serve *app* over plain HTTP on host:port. Blocks for the life of the process.

    The socket is bound here rather than by werkzeug, which prints bind
    failures and exits on its own.
    """
    sock = bind_socket(host, port)
    try:
        server = make_server(host, port, app, threaded=True, fd=sock.fileno())
    finally:
        sock.close()
    server.serve_forever()


class ServiceBootstrap:
    """Turns raw argv/environ into a running listener.

    Each step moves ``state`` forward one stage; any failure moves it straight
    to ``State.STOPPED`` and ``run`` returns a non-zero exit code.
    """

    def __init__(
        self,
        argv: list[str] | None = None,
        environ=None,
        key_loader=load_private_key,
        handler_factory=new_proxy,
        serve=serve_forever,
        cache_size: int = CACHE_SIZE,
    ):
        self._argv = argv
        self._environ = environ
        self._key_loader = key_loader
        self._handler_factory = handler_factory
        self._serve = serve
        self._cache_size = cache_size

        self.state = State.UNSTARTED
        self.exit_code = None
        self.config: Config | None = None
        self.private_key = None
        self.handler = None

    def resolve_config(self) -> Config:
        config = resolve(self._argv, self._environ)
        configure_logging(config.verbose)
        for name in SETTINGS:
            logger.debug("config %s=%r (%s)", name, getattr(config, name),
                         config.source(name).value)
        self.config = config
        self.state = State.CONFIG_RESOLVED
        return config

    def load_credentials(self):
        self.private_key = self._key_loader(self.config.key_file)
        self.state = State.CREDENTIAL_LOADED
        return self.private_key

    def construct_handler(self):
        logger.debug("Creating proxy")
        handler = self._handler_factory(self.private_key, self._cache_size)
        handler.timeout = self.config.timeout
        self.handler = handler
        self.state = State.HANDLER_CONSTRUCTED
        return handler

    def listen(self) -> int:
        """Start the blocking listener and map how it ended to an exit code."""
        config = self.config
        self.state = State.LISTENING
        logger.info("Listening on %s (HTTP, no TLS)", config.address)
        logger.warning("Client traffic is NOT encrypted; run behind a TLS-terminating proxy")

        try:
            self._serve(self.handler, config.host, config.port)
        except OSError as e:
            logger.error("Server stopped: %s", e)
            print(f"Error: {e}", file=sys.stderr)
            return self._stop(1)
        except KeyboardInterrupt:
            logger.info("Server stopped: interrupted")
            return self._stop(130)

        logger.info("Server stopped")
        return self._stop(0)

    def run(self) -> int:
        try:
            config = self.resolve_config()
        except ConfigError as e:
            print(f"Error reading environment: {e}", file=sys.stderr)
            return self._stop(1)

        try:
            config.validate()
        except ConfigError as e:
            logger.error("Invalid configuration: %s", e)
            print(f"Error: {e}", file=sys.stderr)
            return self._stop(1)

        try:
            self.load_credentials()
        except CredentialError as e:
            logger.error("Failed to load private key: %s", e)
            print(f"Error: {e}", file=sys.stderr)
            return self._stop(1)

        try:
            self.construct_handler()
        except HandlerError as e:
            logger.error("Error initializing proxy service: %s", e)
            print(f"Error: {e}", file=sys.stderr)
            return self._stop(1)

        return self.listen()

    def _stop(self, code: int) -> int:
        self.state = State.STOPPED
        self.exit_code = code
        return code


def main(argv: list[str] | None = None) -> None:
    sys.exit(ServiceBootstrap(argv).run())


if __name__ == "__main__":
    main()
