"""Persistence boundary for tests, accounts and the credit ledger."""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime

from linkprobe.pipeline.exceptions import InsufficientCredits, ProfileNotFound
from linkprobe.pipeline.models.link_test import (
    IN_FLIGHT_STATUSES,
    Account,
    CreditTransaction,
    LinkTest,
    TestKind,
    TestStatus,
    TransactionType,
)
from linkprobe.pipeline.models.report import Report

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class TestStore(ABC):
    """Abstract persistence layer used by the orchestrator.

    Every method that changes a balance also appends the matching ledger
    entry as part of the same atomic unit.
    """

    __test__ = False

    @abstractmethod
    async def open_account(
        self, account_id: str, initial_credits: int, now: datetime
    ) -> Account:
        """Create an account, recording any initial credits in the ledger."""

    @abstractmethod
    async def get_balance(self, account_id: str) -> int:
        """Return the current credit balance.

        Raises:
            ProfileNotFound: If the account doesn't exist

        """

    @abstractmethod
    async def create_test_with_charge(
        self,
        account_id: str,
        url: str,
        kind: TestKind,
        credits: int,
        now: datetime,
        created_by: str | None = None,
    ) -> LinkTest:
        """Insert a queued test, debit the account and append a charge.

        Raises:
            ProfileNotFound: If the account doesn't exist
            InsufficientCredits: If the balance is below credits; nothing
                is written in that case

        """

    @abstractmethod
    async def get_test(self, test_id: str) -> LinkTest | None:
        """Return the test, or None if it doesn't exist."""

    @abstractmethod
    async def list_tests(
        self,
        account_id: str,
        status: TestStatus | None = None,
        limit: int | None = None,
    ) -> list[LinkTest]:
        """Return an account's tests, newest first."""

    @abstractmethod
    async def mark_running(self, test_id: str) -> bool:
        """Move a queued test to running; False if it wasn't queued."""

    @abstractmethod
    async def complete_test(
        self,
        test_id: str,
        status: TestStatus,
        report: Report,
        network_detected: str | None,
        now: datetime,
    ) -> bool:
        """Attach a report and terminal status to a running test.

        Returns:
            False if the test was no longer running

        """

    @abstractmethod
    async def fail_and_refund(
        self, test_id: str, error_message: str, note: str, now: datetime
    ) -> bool:
        """Fail an in-flight test and refund its charge.

        Returns:
            False, without any change, if the test was already terminal

        """

    @abstractmethod
    async def find_stale_tests(self, cutoff: datetime) -> list[LinkTest]:
        """Return in-flight tests created before cutoff."""

    @abstractmethod
    async def list_transactions(
        self, account_id: str, limit: int | None = None
    ) -> list[CreditTransaction]:
        """Return ledger entries for an account, newest first."""

    @abstractmethod
    async def save_screenshot(self, test_id: str, step: str, data: bytes) -> None:
        """Persist a screenshot captured at a named step of a test."""


class MemoryTestStore(TestStore):
    """In-process store; a single lock makes each mutation atomic."""

    def __init__(self) -> None:
        """Initialize empty store."""
        self._lock = asyncio.Lock()
        self._accounts: dict[str, Account] = {}
        self._tests: dict[str, LinkTest] = {}
        self._transactions: list[CreditTransaction] = []
        self.screenshots: dict[str, dict[str, bytes]] = {}

    def _account(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise ProfileNotFound(f"Account not found: {account_id}")
        return account

    def _append_transaction(
        self,
        account: Account,
        amount: int,
        type_: TransactionType,
        now: datetime,
        test_id: str | None = None,
        note: str | None = None,
    ) -> CreditTransaction:
        account.credit_balance += amount
        transaction = CreditTransaction(
            id=_new_id(),
            account_id=account.id,
            amount=amount,
            type=type_,
            test_id=test_id,
            balance_after=account.credit_balance,
            created_at=now,
            note=note,
        )
        self._transactions.append(transaction)
        return transaction

    async def open_account(
        self, account_id: str, initial_credits: int, now: datetime
    ) -> Account:
        """Create an account with a welcome bonus entry."""
        async with self._lock:
            if account_id in self._accounts:
                raise ValueError(f"Account already exists: {account_id}")
            account = Account(id=account_id, credit_balance=0)
            self._accounts[account_id] = account
            if initial_credits:
                self._append_transaction(
                    account, initial_credits, "welcome_bonus", now, note="Welcome bonus"
                )
            return account.model_copy()

    async def get_balance(self, account_id: str) -> int:
        """Return the current balance."""
        async with self._lock:
            return self._account(account_id).credit_balance

    async def create_test_with_charge(
        self,
        account_id: str,
        url: str,
        kind: TestKind,
        credits: int,
        now: datetime,
        created_by: str | None = None,
    ) -> LinkTest:
        """Check, insert and debit under one lock."""
        async with self._lock:
            account = self._account(account_id)
            if account.credit_balance < credits:
                raise InsufficientCredits(
                    f"Insufficient credits: {kind} costs {credits}, "
                    f"balance is {account.credit_balance}"
                )

            test = LinkTest(
                id=_new_id(),
                account_id=account_id,
                created_by=created_by,
                url=url,
                kind=kind,
                status="queued",
                credits_charged=credits,
                created_at=now,
            )
            self._tests[test.id] = test
            self._append_transaction(
                account, -credits, "test_charge", now, test_id=test.id, note=kind
            )
            return test.model_copy()

    async def get_test(self, test_id: str) -> LinkTest | None:
        """Return a copy of the test."""
        async with self._lock:
            test = self._tests.get(test_id)
            return test.model_copy() if test else None

    async def list_tests(
        self,
        account_id: str,
        status: TestStatus | None = None,
        limit: int | None = None,
    ) -> list[LinkTest]:
        """Return copies of matching tests, newest first."""
        async with self._lock:
            tests = [
                t
                for t in self._tests.values()
                if t.account_id == account_id and (status is None or t.status == status)
            ]
        tests.sort(key=lambda t: t.created_at, reverse=True)
        if limit is not None:
            tests = tests[:limit]
        return [t.model_copy() for t in tests]

    async def mark_running(self, test_id: str) -> bool:
        """Transition queued to running."""
        async with self._lock:
            test = self._tests.get(test_id)
            if test is None or test.status != "queued":
                return False
            self._tests[test_id] = test.model_copy(update={"status": "running"})
            return True

    async def complete_test(
        self,
        test_id: str,
        status: TestStatus,
        report: Report,
        network_detected: str | None,
        now: datetime,
    ) -> bool:
        """Transition running to a successful terminal status."""
        if status not in ("success", "partial"):
            raise ValueError(f"Not a completion status: {status}")

        async with self._lock:
            test = self._tests.get(test_id)
            if test is None or test.status != "running":
                return False
            self._tests[test_id] = test.model_copy(
                update={
                    "status": status,
                    "report": report,
                    "network_detected": network_detected,
                    "completed_at": now,
                }
            )
            return True

    async def fail_and_refund(
        self, test_id: str, error_message: str, note: str, now: datetime
    ) -> bool:
        """Fail and refund once; terminal tests are left untouched."""
        async with self._lock:
            test = self._tests.get(test_id)
            if test is None or test.status not in IN_FLIGHT_STATUSES:
                return False

            self._tests[test_id] = test.model_copy(
                update={
                    "status": "failed",
                    "error_message": error_message,
                    "completed_at": now,
                }
            )
            account = self._accounts.get(test.account_id)
            if account is None:
                logger.error(
                    f"Account {test.account_id} missing, refund for {test_id} skipped"
                )
                return True
            if test.credits_charged:
                self._append_transaction(
                    account,
                    test.credits_charged,
                    "refund",
                    now,
                    test_id=test_id,
                    note=note,
                )
            return True

    async def find_stale_tests(self, cutoff: datetime) -> list[LinkTest]:
        """Return in-flight tests created strictly before cutoff."""
        async with self._lock:
            stale = [
                t.model_copy()
                for t in self._tests.values()
                if t.status in IN_FLIGHT_STATUSES and t.created_at < cutoff
            ]
        stale.sort(key=lambda t: t.created_at)
        return stale

    async def list_transactions(
        self, account_id: str, limit: int | None = None
    ) -> list[CreditTransaction]:
        """Return ledger entries, newest first."""
        async with self._lock:
            entries = [t for t in self._transactions if t.account_id == account_id]
        entries.reverse()
        if limit is not None:
            entries = entries[:limit]
        return entries

    async def save_screenshot(self, test_id: str, step: str, data: bytes) -> None:
        """Keep screenshot bytes in memory."""
        async with self._lock:
            self.screenshots.setdefault(test_id, {})[step] = data
