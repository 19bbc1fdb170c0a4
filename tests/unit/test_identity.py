"""Tests for caller identity resolution."""

import pytest

from linkprobe.pipeline.exceptions import ProfileNotFound, Unauthenticated
from linkprobe.pipeline.identity import StaticIdentityResolver


@pytest.fixture
def resolver() -> StaticIdentityResolver:
    """Resolver with one account and one profile-less caller."""
    return StaticIdentityResolver({"alice": "acct-1", "ghost": None})


async def test_resolve_known_caller(resolver: StaticIdentityResolver) -> None:
    """Known callers resolve to their account."""
    assert await resolver.resolve("alice") == "acct-1"


@pytest.mark.parametrize("caller", [None, ""])
async def test_resolve_missing_caller(
    resolver: StaticIdentityResolver, caller: str | None
) -> None:
    """Missing caller tokens are unauthenticated."""
    with pytest.raises(Unauthenticated, match="Not authenticated"):
        await resolver.resolve(caller)


async def test_resolve_unknown_caller(resolver: StaticIdentityResolver) -> None:
    """Unknown callers are rejected by default."""
    with pytest.raises(Unauthenticated):
        await resolver.resolve("mallory")


async def test_resolve_unknown_caller_as_missing_profile() -> None:
    """Unknown callers can be treated as authenticated without a profile."""
    resolver = StaticIdentityResolver({}, reject_unknown=False)

    with pytest.raises(ProfileNotFound):
        await resolver.resolve("mallory")


async def test_resolve_caller_without_account(
    resolver: StaticIdentityResolver,
) -> None:
    """Callers mapped to no account get ProfileNotFound."""
    with pytest.raises(ProfileNotFound, match="Profile not found"):
        await resolver.resolve("ghost")


async def test_resolver_copies_mapping() -> None:
    """Later changes to the source mapping do not leak in."""
    accounts: dict[str, str | None] = {"alice": "acct-1"}
    resolver = StaticIdentityResolver(accounts)
    accounts["bob"] = "acct-2"

    with pytest.raises(Unauthenticated):
        await resolver.resolve("bob")
