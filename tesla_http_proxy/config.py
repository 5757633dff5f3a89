"""Configuration module: frozen dataclass resolved from defaults, env vars and CLI flags."""

import argparse
import enum
import math
import os
import re
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from tesla_http_proxy.errors import ConfigError
from tesla_http_proxy.proxy import DEFAULT_TIMEOUT

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080

ENV_HOST = "TESLA_HTTP_PROXY_HOST"
ENV_PORT = "TESLA_HTTP_PROXY_PORT"
ENV_TIMEOUT = "TESLA_HTTP_PROXY_TIMEOUT"
ENV_VERBOSE = "TESLA_VERBOSE"
ENV_KEY_FILE = "TESLA_KEY_FILE"

SETTINGS = ("verbose", "host", "port", "timeout", "key_file")

_DESCRIPTION = """\
A server that exposes a REST API for sending commands to Tesla vehicles over HTTP.

WARNING: This proxy does NOT encrypt client traffic. Use only behind TLS-terminating
infrastructure (Cloud Run, nginx, Traefik, K8s ingress) or in local development."""

_EPILOG = f"""\
environment variables (used only when the matching flag is not given):
  {ENV_HOST}, {ENV_PORT}, {ENV_TIMEOUT}, {ENV_VERBOSE}, {ENV_KEY_FILE}"""

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"([0-9]+\.?[0-9]*|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")
_INTEGER = re.compile(r"[+-]?[0-9]+")
# Largest duration representable as signed 64-bit nanoseconds.
_MAX_DURATION = (2**63 - 1) / 1e9

# Spellings accepted by -verbose=<value>, as for any Go bool flag.
_FLAG_BOOLS = {
    "1": True, "t": True, "T": True, "TRUE": True, "true": True, "True": True,
    "0": False, "f": False, "F": False, "FALSE": False, "false": False, "False": False,
}


class Source(enum.Enum):
    """Where a resolved setting came from."""

    DEFAULT = "default"
    ENV = "env"
    FLAG = "flag"


@dataclass(frozen=True)
class Config:
    verbose: bool = False
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT  # seconds
    key_file: str | None = None
    sources: Mapping[str, Source] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))

    def source(self, name: str) -> Source:
        return self.sources.get(name, Source.DEFAULT)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def validate(self) -> None:
        """Reject values that parsed fine but cannot be used to listen."""
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port out of range: {self.port}")
        if self.timeout < 0:
            raise ConfigError(f"negative timeout: {self.timeout}s")


def parse_duration(text: str) -> float:
    """Parse a unit-suffixed duration such as ``30s`` or ``1m30s`` into seconds.

    Accepts an optional sign followed by one or more ``<number><unit>`` groups
    with units ns, us (µs), ms, s, m and h. The bare string ``0`` is also valid.

    Raises:
        ValueError: If *text* is not a valid duration.
    """
    rest = text
    sign = 1.0
    if rest[:1] in ("+", "-"):
        if rest[0] == "-":
            sign = -1.0
        rest = rest[1:]
    if rest == "0":
        return 0.0
    if not rest:
        raise ValueError(f"invalid duration {text!r}")

    total = 0.0
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if math.isinf(total) or total > _MAX_DURATION:
        raise ValueError(f"invalid duration {text!r}")
    return sign * total


def parse_verbose(value: str) -> bool:
    # Fails open: anything but "false" or "0" enables verbose output, "no" included.
    return value != "false" and value != "0"


def _duration_arg(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


class _BoolFlagAction(argparse.Action):
    """Boolean flag taking ``-verbose``, ``-verbose=false`` or ``--no-verbose``."""

    def __init__(self, option_strings, dest, default=None, help=None, **kwargs):
        negated = [
            "--no-" + opt[2:] for opt in option_strings if opt.startswith("--")
        ]
        super().__init__(
            option_strings + negated, dest, nargs="?", const=True,
            default=default, metavar="BOOL", help=help,
        )

    def __call__(self, parser, namespace, values, option_string=None):
        negated = option_string.startswith("--no-")
        if values is True:
            setattr(namespace, self.dest, not negated)
            return
        if negated:
            raise argparse.ArgumentError(self, f"{option_string} takes no value")
        if values not in _FLAG_BOOLS:
            raise argparse.ArgumentError(self, f"invalid boolean value: {values!r}")
        setattr(namespace, self.dest, _FLAG_BOOLS[values])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tesla-http-proxy-insecure",
        description=_DESCRIPTION,
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    # None everywhere so an omitted flag is distinguishable from one equal to the default.
    parser.add_argument(
        "-verbose", "--verbose", action=_BoolFlagAction, default=None,
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-host", "--host", type=str, default=None, metavar="HOSTNAME",
        help=f"Proxy server hostname (default: {DEFAULT_HOST})",
    )
    parser.add_argument(
        "-port", "--port", type=int, default=None, metavar="PORT",
        help=f"Port to listen on (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "-timeout", "--timeout", type=_duration_arg, default=None, metavar="DURATION",
        help=f"Timeout interval when sending commands (default: {DEFAULT_TIMEOUT:g}s)",
    )
    parser.add_argument(
        "-key-file", "--key-file", type=str, default=None, metavar="FILE",
        help="PEM-encoded private key used to authenticate commands",
    )
    return parser


def parse_flags(argv: list[str] | None = None, defaults: Config | None = None) -> Config:
    """Build a Config from command-line flags layered over *defaults*.

    Flags that appear on the command line are tagged ``Source.FLAG``; all other
    fields keep their default value and source. Parse errors are reported by
    argparse, which exits with status 2.
    """
    if defaults is None:
        defaults = Config()
    args = build_parser().parse_args(argv)

    values = {}
    sources = dict(defaults.sources)
    for name in SETTINGS:
        value = getattr(args, name)
        if value is None:
            continue
        values[name] = value
        sources[name] = Source.FLAG
    return replace(defaults, sources=sources, **values)


def _lookup(config: Config, environ: Mapping[str, str], name: str, var: str) -> str | None:
    if config.source(name) is not Source.DEFAULT:
        return None
    return environ.get(var)


def apply_environment(config: Config, environ: Mapping[str, str] | None = None) -> Config:
    """Return *config* with environment overrides applied to still-default fields.

    Fields set by a flag are never overwritten. Raises ConfigError for a
    malformed port or timeout, in which case no override is applied at all.
    """
    if environ is None:
        environ = os.environ
    values = {}

    host = _lookup(config, environ, "host", ENV_HOST)
    if host is not None:
        values["host"] = host

    verbose = _lookup(config, environ, "verbose", ENV_VERBOSE)
    if verbose is not None:
        values["verbose"] = parse_verbose(verbose)

    port = _lookup(config, environ, "port", ENV_PORT)
    if port is not None:
        if not _INTEGER.fullmatch(port):
            raise ConfigError(f"invalid port: {port}")
        values["port"] = int(port)

    timeout = _lookup(config, environ, "timeout", ENV_TIMEOUT)
    if timeout is not None:
        try:
            values["timeout"] = parse_duration(timeout)
        except ValueError:
            raise ConfigError(f"invalid timeout: {timeout}") from None

    key_file = _lookup(config, environ, "key_file", ENV_KEY_FILE)
    if key_file is not None:
        values["key_file"] = key_file

    sources = dict(config.sources)
    sources.update((name, Source.ENV) for name in values)
    return replace(config, sources=sources, **values)


def resolve(
    argv: list[str] | None = None,
    environ: Mapping[str, str] | None = None,
    defaults: Config | None = None,
) -> Config:
    """Resolve the effective configuration: CLI flags > env vars > defaults."""
    return apply_environment(parse_flags(argv, defaults), environ)
