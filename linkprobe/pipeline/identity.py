"""Resolve callers to credit-holding accounts."""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from linkprobe.pipeline.exceptions import ProfileNotFound, Unauthenticated


class IdentityResolver(ABC):
    """Abstract base for caller-to-account resolution."""

    @abstractmethod
    async def resolve(self, caller: str | None) -> str:
        """Return the account id of the caller.

        Args:
            caller: Opaque caller token, None if unauthenticated

        Returns:
            Account identifier

        Raises:
            Unauthenticated: If caller is missing or unknown
            ProfileNotFound: If caller has no account

        """


class StaticIdentityResolver(IdentityResolver):
    """Resolves callers from a fixed token-to-account mapping."""

    def __init__(
        self,
        accounts: Mapping[str, str | None],
        reject_unknown: bool = True,
    ) -> None:
        """Initialize resolver.

        A token mapped to None is authenticated but has no account.
        """
        self.accounts = dict(accounts)
        self.reject_unknown = reject_unknown

    async def resolve(self, caller: str | None) -> str:
        """Look the caller up in the mapping."""
        if not caller:
            raise Unauthenticated("Not authenticated")

        if caller not in self.accounts:
            if self.reject_unknown:
                raise Unauthenticated("Not authenticated")
            raise ProfileNotFound("Profile not found")

        account_id = self.accounts[caller]
        if account_id is None:
            raise ProfileNotFound("Profile not found")
        return account_id
