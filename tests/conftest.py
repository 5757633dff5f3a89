import logging

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


@pytest.fixture
def make_key_file(tmp_path):
    """Return a helper that writes *key* as PEM under tmp_path."""
    def _write(name, key, fmt=serialization.PrivateFormat.PKCS8,
               encryption=serialization.NoEncryption()):
        path = tmp_path / name
        path.write_bytes(key.private_bytes(serialization.Encoding.PEM, fmt, encryption))
        return str(path)
    return _write


@pytest.fixture
def p256_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def key_file(make_key_file, p256_key):
    return make_key_file("private.pem", p256_key)


@pytest.fixture
def restore_logging():
    """Undo the level changes configure_logging makes to shared loggers."""
    root = logging.getLogger()
    werkzeug = logging.getLogger("werkzeug")
    saved = (root.level, werkzeug.level)
    yield
    root.setLevel(saved[0])
    werkzeug.setLevel(saved[1])
