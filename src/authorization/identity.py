"""Identity resolution for caller credentials, with a time-bounded cache.

``CredentialIdentityResolver`` dispatches on the credential variant:

- bearer tokens go to the store's token review, one round trip per call;
- client certificates are inspected locally. The subject common name is the
  user name, the validity window is enforced, and when a trusted issuer
  bundle is configured the certificate must be signed by one of them.

``CachingIdentityResolver`` wraps any resolver with a fixed TTL. Failures are
never cached, and a revoked credential stays valid until its entry expires.
"""

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final, Protocol, assert_never

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.x509.oid import NameOID
from loguru import logger

from src.authorization.credentials import (
    BearerToken,
    ClientCertificate,
    Credential,
    credential_fingerprint,
)
from src.core.exceptions import InvalidCredentialError, UnknownFailureError
from src.infrastructure.store.client import ResourceStore, StoreError

SERVICE_ACCOUNT_PREFIX: Final[str] = "system:serviceaccount:"


class IdentityKind(StrEnum):
    SERVICE_ACCOUNT = "ServiceAccount"
    USER = "User"


@dataclass(frozen=True, slots=True)
class Identity:
    """The principal a credential belongs to."""

    kind: IdentityKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.name}"


class IdentityResolver(Protocol):
    async def resolve(self, credential: Credential) -> Identity: ...


class TokenReviewer:
    """Validates bearer tokens through the store's token review API."""

    def __init__(self, store: ResourceStore) -> None:
        self._store = store

    async def review(self, token: BearerToken) -> Identity:
        """Exchange a bearer token for the identity it was issued to.

        Raises:
            InvalidCredentialError: If the store does not authenticate the token.
            UnknownFailureError: If the review itself could not be performed.
        """
        try:
            review = await self._store.create_token_review(token.token)
        except StoreError as e:
            if e.is_unauthorized:
                raise InvalidCredentialError("Invalid bearer token", cause=e) from e
            raise UnknownFailureError(
                "Token review failed", context={"reason": e.reason}, cause=e
            ) from e

        status = review.get("status") or {}
        if not status.get("authenticated"):
            raise InvalidCredentialError(
                "Invalid bearer token",
                context={"review_error": status.get("error", "")},
            )

        username = str((status.get("user") or {}).get("username", ""))
        if not username:
            raise InvalidCredentialError("Token review returned no user name")

        return identity_from_username(username)


def identity_from_username(username: str) -> Identity:
    """Map a store user name onto an identity.

    ``system:serviceaccount:<namespace>:<name>`` denotes a service account.
    Everything else is a user.
    """
    if username.startswith(SERVICE_ACCOUNT_PREFIX):
        _, _, rest = username.partition(SERVICE_ACCOUNT_PREFIX)
        namespace, _, name = rest.partition(":")
        if namespace and name:
            return Identity(IdentityKind.SERVICE_ACCOUNT, name)
    return Identity(IdentityKind.USER, username)


class CertificateInspector:
    """Derives identities from client certificates without a store round trip.

    Args:
        trusted_issuers: Issuer certificates allowed to sign client
            certificates. When empty, the issuer is not checked here and the
            store remains the authority when the certificate is presented.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        trusted_issuers: Sequence[x509.Certificate] = (),
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._trusted_issuers = tuple(trusted_issuers)
        self._clock = clock

    @classmethod
    def from_pem_file(cls, path: str | None) -> "CertificateInspector":
        if path is None:
            return cls()
        with open(path, "rb") as f:
            return cls(x509.load_pem_x509_certificates(f.read()))

    def inspect(self, credential: ClientCertificate) -> Identity:
        """Return the user identity named by the certificate's common name.

        Raises:
            InvalidCredentialError: If the certificate cannot be parsed, is
                outside its validity window, is not signed by a trusted
                issuer, or has no common name.
        """
        certificate = load_client_certificate(credential)

        now = self._clock()
        if not (
            certificate.not_valid_before_utc <= now <= certificate.not_valid_after_utc
        ):
            raise InvalidCredentialError(
                "Client certificate has expired or is not yet valid",
                context={"not_after": certificate.not_valid_after_utc.isoformat()},
            )

        if self._trusted_issuers:
            self._verify_issuer(certificate)

        common_names = certificate.subject.get_attributes_for_oid(
            NameOID.COMMON_NAME
        )
        if not common_names or not common_names[0].value:
            raise InvalidCredentialError("Client certificate has no common name")

        return Identity(IdentityKind.USER, str(common_names[0].value))

    def _verify_issuer(self, certificate: x509.Certificate) -> None:
        for issuer in self._trusted_issuers:
            if issuer.subject != certificate.issuer:
                continue
            try:
                certificate.verify_directly_issued_by(issuer)
            except (ValueError, TypeError, InvalidSignature) as e:
                raise InvalidCredentialError(
                    "Client certificate signature is invalid", cause=e
                ) from e
            return

        raise InvalidCredentialError(
            "Client certificate is not signed by a trusted issuer",
            context={"issuer": certificate.issuer.rfc4514_string()},
        )


def load_client_certificate(credential: ClientCertificate) -> x509.Certificate:
    """Parse the first certificate of a client certificate bundle."""
    try:
        certificates = x509.load_pem_x509_certificates(credential.pem_data)
    except ValueError as e:
        raise InvalidCredentialError(
            "Client certificate could not be parsed", cause=e
        ) from e
    return certificates[0]


class CredentialIdentityResolver:
    """Resolves any credential variant to an identity."""

    def __init__(
        self, token_reviewer: TokenReviewer, certificate_inspector: CertificateInspector
    ) -> None:
        self._token_reviewer = token_reviewer
        self._certificate_inspector = certificate_inspector

    async def resolve(self, credential: Credential) -> Identity:
        match credential:
            case BearerToken():
                return await self._token_reviewer.review(credential)
            case ClientCertificate():
                return self._certificate_inspector.inspect(credential)
            case _:
                assert_never(credential)


@dataclass(frozen=True, slots=True)
class _CacheEntry:
    identity: Identity
    expires_at: float


class CachingIdentityResolver:
    """Memoizes identity resolution for a fixed time-to-live.

    Entries are keyed by a digest of the credential. Expired entries are
    treated as absent on lookup and purged periodically on write. Two
    concurrent lookups of the same missing credential may both call the
    wrapped resolver; the later write wins, which is harmless because
    resolution is idempotent.

    Args:
        resolver: The resolver to memoize.
        ttl_seconds: How long a resolved identity is served from the cache.
        clock: Monotonic time source in seconds.
        purge_interval: Number of writes between sweeps of expired entries.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        purge_interval: int = 256,
    ) -> None:
        if ttl_seconds <= 0:
            msg = "ttl_seconds must be positive"
            raise ValueError(msg)
        self._resolver = resolver
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._purge_interval = purge_interval
        self._entries: dict[str, _CacheEntry] = {}
        self._writes = 0

    def __len__(self) -> int:
        return len(self._entries)

    async def resolve(self, credential: Credential) -> Identity:
        key = credential_fingerprint(credential)

        entry = self._entries.get(key)
        if entry is not None and self._clock() < entry.expires_at:
            logger.debug("Identity cache hit", identity=str(entry.identity))
            return entry.identity

        identity = await self._resolver.resolve(credential)

        now = self._clock()
        self._entries[key] = _CacheEntry(identity, now + self._ttl_seconds)
        self._writes += 1
        if self._writes % self._purge_interval == 0:
            self._purge_expired(now)

        logger.debug("Identity cache miss", identity=str(identity))
        return identity

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            logger.debug("Purged expired identities", count=len(expired))
