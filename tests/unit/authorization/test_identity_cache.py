"""Unit tests for the time-bounded identity cache."""

import pytest
import pytest_check
from pytest_mock import MockerFixture

from src.authorization.credentials import BearerToken
from src.authorization.identity import CachingIdentityResolver, Identity, IdentityKind
from src.core.exceptions import InvalidCredentialError

ALICE = Identity(IdentityKind.USER, "alice")


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.mark.unit
class TestCachingIdentityResolver:
    """Test TTL behaviour of the identity cache."""

    async def test_hit_within_ttl(self, mocker: MockerFixture, clock: FakeClock) -> None:
        """Verify a second lookup inside the TTL does not resolve again."""
        # Arrange
        inner = mocker.AsyncMock()
        inner.resolve.return_value = ALICE
        cache = CachingIdentityResolver(inner, ttl_seconds=300, clock=clock)

        # Act
        first = await cache.resolve(BearerToken("t"))
        clock.now = 60
        second = await cache.resolve(BearerToken("t"))

        # Assert
        with pytest_check.check:
            assert first == second == ALICE
        with pytest_check.check:
            assert inner.resolve.await_count == 1

    async def test_miss_after_ttl(self, mocker: MockerFixture, clock: FakeClock) -> None:
        """Verify an expired entry is resolved again."""
        inner = mocker.AsyncMock()
        inner.resolve.return_value = ALICE
        cache = CachingIdentityResolver(inner, ttl_seconds=300, clock=clock)

        await cache.resolve(BearerToken("t"))
        clock.now = 310
        await cache.resolve(BearerToken("t"))

        assert inner.resolve.await_count == 2

    async def test_entry_expires_exactly_at_ttl(
        self, mocker: MockerFixture, clock: FakeClock
    ) -> None:
        """Verify the entry is no longer served once the TTL has fully elapsed."""
        inner = mocker.AsyncMock()
        inner.resolve.return_value = ALICE
        cache = CachingIdentityResolver(inner, ttl_seconds=300, clock=clock)

        await cache.resolve(BearerToken("t"))
        clock.now = 300
        await cache.resolve(BearerToken("t"))

        assert inner.resolve.await_count == 2

    async def test_failures_are_not_cached(
        self, mocker: MockerFixture, clock: FakeClock
    ) -> None:
        """Verify a rejected credential is looked up again on every call."""
        inner = mocker.AsyncMock()
        inner.resolve.side_effect = [InvalidCredentialError("bad"), ALICE]
        cache = CachingIdentityResolver(inner, ttl_seconds=300, clock=clock)

        with pytest.raises(InvalidCredentialError):
            await cache.resolve(BearerToken("t"))
        identity = await cache.resolve(BearerToken("t"))

        with pytest_check.check:
            assert identity == ALICE
        with pytest_check.check:
            assert len(cache) == 1

    async def test_credentials_are_cached_separately(
        self, mocker: MockerFixture, clock: FakeClock
    ) -> None:
        """Verify each credential gets its own entry."""
        inner = mocker.AsyncMock()
        inner.resolve.side_effect = [ALICE, Identity(IdentityKind.USER, "bob")]
        cache = CachingIdentityResolver(inner, ttl_seconds=300, clock=clock)

        alice = await cache.resolve(BearerToken("a"))
        bob = await cache.resolve(BearerToken("b"))

        with pytest_check.check:
            assert (alice.name, bob.name) == ("alice", "bob")
        with pytest_check.check:
            assert len(cache) == 2

    async def test_expired_entries_are_purged(
        self, mocker: MockerFixture, clock: FakeClock
    ) -> None:
        """Verify expired entries are swept after enough writes."""
        inner = mocker.AsyncMock()
        inner.resolve.return_value = ALICE
        cache = CachingIdentityResolver(
            inner, ttl_seconds=10, clock=clock, purge_interval=2
        )

        await cache.resolve(BearerToken("old"))
        clock.now = 20
        # The second write triggers a sweep which drops the expired entry
        await cache.resolve(BearerToken("new"))

        assert len(cache) == 1

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_ttl_must_be_positive(self, mocker: MockerFixture, ttl: float) -> None:
        """Verify a non-positive TTL is refused."""
        with pytest.raises(ValueError, match="ttl_seconds must be positive"):
            CachingIdentityResolver(mocker.AsyncMock(), ttl_seconds=ttl)
