"""Caller credentials extracted from the Authorization header.

Two schemes are accepted:

- ``Bearer <token>``: an opaque token validated by the store's token review.
- ``ClientCert <base64>``: base64 of a PEM bundle holding the client
  certificate (and usually its private key, which the store client needs to
  present the certificate on the caller's behalf).

Parsing is pure and synchronous. Anything that cannot be parsed is a
``MalformedCredentialError`` and stops the request before any identity
lookup or store call happens.
"""

import base64
import binascii
import hashlib
from dataclasses import dataclass, field
from typing import Final, assert_never

from src.core.exceptions import MalformedCredentialError

BEARER_SCHEME: Final[str] = "bearer"
CLIENT_CERT_SCHEME: Final[str] = "clientcert"


@dataclass(frozen=True, slots=True)
class BearerToken:
    """An opaque bearer token."""

    token: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class ClientCertificate:
    """PEM encoded certificate material (certificate and optional private key)."""

    pem_data: bytes = field(repr=False)


type Credential = BearerToken | ClientCertificate


def parse_authorization_header(header: str | None) -> Credential:
    """Parse an Authorization header value into a credential.

    Args:
        header: The raw header value, or None when the header is absent.

    Returns:
        Credential: The parsed bearer token or client certificate.

    Raises:
        MalformedCredentialError: If the header is absent, empty, uses an
            unsupported scheme or carries an empty or undecodable value.
    """
    if header is None or not header.strip():
        raise MalformedCredentialError("Authorization header is missing")

    scheme, _, value = header.strip().partition(" ")
    value = value.strip()

    match scheme.lower():
        case "bearer":
            if not value:
                raise MalformedCredentialError("Bearer token is empty")
            return BearerToken(value)
        case "clientcert":
            if not value:
                raise MalformedCredentialError("Client certificate is empty")
            try:
                pem_data = base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as e:
                raise MalformedCredentialError(
                    "Client certificate is not valid base64", cause=e
                ) from e
            return ClientCertificate(pem_data)
        case _:
            raise MalformedCredentialError(
                "Unsupported authorization scheme",
                context={"scheme": scheme[:32]},
            )


def credential_fingerprint(credential: Credential) -> str:
    """Return a stable digest identifying a credential.

    Used as cache key so raw secrets are never kept as dictionary keys.
    """
    match credential:
        case BearerToken(token=token):
            material = f"{BEARER_SCHEME}:{token}".encode()
        case ClientCertificate(pem_data=pem_data):
            material = CLIENT_CERT_SCHEME.encode() + b":" + pem_data
        case _:
            assert_never(credential)
    return hashlib.sha256(material).hexdigest()
