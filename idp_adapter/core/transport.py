"""Per-call HTTP sessions.

Every login or directory call gets its own session built from the provider
config. When the config carries a client certificate and key, they are
validated, written to a private temporary directory for ``requests`` and
removed again when the session closes.
"""
from __future__ import annotations
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

import requests
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from .errors import TLSSetupError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10


def load_client_cert(certificate: str, private_key: str) -> None:
    """Check that the PEM certificate and private key can be loaded.

    Raises:
        TLSSetupError: If either one does not parse
    """
    try:
        x509.load_pem_x509_certificate(certificate.encode("utf-8"))
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise TLSSetupError("client certificate could not be loaded") from exc
    try:
        serialization.load_pem_private_key(private_key.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise TLSSetupError("client private key could not be loaded") from exc


@contextmanager
def _client_cert_files(certificate: str, private_key: str) -> Iterator[Optional[Tuple[str, str]]]:
    if not certificate and not private_key:
        yield None
        return
    if not certificate or not private_key:
        raise TLSSetupError("client certificate and private key must be configured together")

    load_client_cert(certificate, private_key)
    with tempfile.TemporaryDirectory(prefix="idp-mtls-") as tmp:
        cert_path = os.path.join(tmp, "client.crt")
        key_path = os.path.join(tmp, "client.key")
        for path, content in ((cert_path, certificate), (key_path, private_key)):
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w") as handle:
                handle.write(content)
        yield cert_path, key_path


@contextmanager
def client_session(config, session_class=requests.Session, **session_kwargs):
    """Open a session configured with the config's client certificate.

    Args:
        config: ProviderConfig (only ``certificate`` and ``private_key`` are read)
        session_class: ``requests.Session`` or a subclass such as Authlib's ``OAuth2Session``
        **session_kwargs: Passed to ``session_class``

    Yields:
        The open session, closed on exit

    Raises:
        TLSSetupError: If the certificate or key cannot be loaded
    """
    with _client_cert_files(config.certificate, config.private_key) as cert:
        session = session_class(**session_kwargs)
        if cert:
            session.cert = cert
            logger.debug("Client certificate attached to session")
        try:
            yield session
        finally:
            session.close()
