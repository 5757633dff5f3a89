"""Exception types raised during startup."""


class ProxyError(Exception):
    """Base class for launcher failures."""


class ConfigError(ProxyError):
    """Malformed or out-of-range configuration value."""


class CredentialError(ProxyError):
    """Private key missing or unusable."""


class HandlerError(ProxyError):
    """Request handler could not be constructed."""
