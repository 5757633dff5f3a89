"""
credentials.py: Private Key Loading
===================================
Loads the NIST P-256 private key used to authenticate vehicle commands.

Uses the ``cryptography`` package to parse PEM key material (both SEC1
``EC PRIVATE KEY`` and PKCS#8 ``PRIVATE KEY`` encodings are accepted).
"""

import logging

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from tesla_http_proxy.errors import CredentialError

logger = logging.getLogger(__name__)


def load_private_key(path: str | None) -> ec.EllipticCurvePrivateKey:
    """
    Read and validate a PEM-encoded P-256 private key.

    Args:
        path: Location of the key file, usually from -key-file or TESLA_KEY_FILE.

    Returns:
        The parsed elliptic-curve private key.

    Raises:
        CredentialError: If no path is configured, the file cannot be read,
            or it does not hold an unencrypted P-256 private key.
    """
    if not path:
        raise CredentialError(
            "no private key file configured (use -key-file or TESLA_KEY_FILE)"
        )

    try:
        with open(path, "rb") as f:
            pem = f.read()
    except OSError as e:
        raise CredentialError(f"cannot read private key {path}: {e.strerror}") from e

    try:
        key = load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as e:
        raise CredentialError(f"invalid private key in {path}: {e}") from e

    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise CredentialError(f"private key in {path} is not an elliptic-curve key")
    if not isinstance(key.curve, ec.SECP256R1):
        raise CredentialError(
            f"private key in {path} uses curve {key.curve.name}, expected secp256r1"
        )

    logger.debug("Loaded private key from %s", path)
    return key
