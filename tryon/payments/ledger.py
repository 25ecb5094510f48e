"""
Balance ledger with safety invariants:
- Debit never drives a balance below zero
- Durable write failure on debit rolls the cache back
- Durable write failure on credit keeps the in-memory credit
- Credits are idempotent by ref
- Every applied mutation is journaled (initial - debits + credits == cached)
"""
import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from tryon.errors import InsufficientFunds, PersistenceError
from tryon.models import utcnow_iso
from tryon.storage.base import BaseStorage
from tryon.utils.correlation import correlation_tag
from tryon.utils.logging_config import get_logger

logger = get_logger(__name__)

BalanceObserver = Callable[[str, int], None]


@dataclass
class LedgerEntry:
    kind: str  # debit | credit
    user_id: str
    amount: int
    ref: Optional[str]
    balance_after: int
    persisted: bool = True
    created_at: str = field(default_factory=utcnow_iso)


class BalanceLedger:
    """Authoritative spendable balance per user, cached over a durable store."""

    def __init__(self, store: BaseStorage):
        """
        Initialize ledger.

        Args:
            store: Durable balance store (read_balance / write_balance)
        """
        self.store = store
        self._cache: Dict[str, int] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._entries: List[LedgerEntry] = []
        self._refs: Set[str] = set()
        self._observers: List[BalanceObserver] = []

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def _load(self, user_id: str) -> int:
        # Caller holds the user lock
        if user_id not in self._cache:
            try:
                balance = int(await self.store.read_balance(user_id))
            except Exception as e:
                logger.error(f"{correlation_tag()} [LEDGER] read_failed user={user_id} error={e}")
                raise PersistenceError(f"Failed to read balance for user {user_id}: {e}") from e
            self._cache[user_id] = max(balance, 0)
        return self._cache[user_id]

    async def get_balance(self, user_id: str) -> int:
        """Current balance, loaded from the durable store on first use."""
        async with self._lock_for(user_id):
            return await self._load(user_id)

    def visible_balance(self, user_id: str) -> Optional[int]:
        """Cached balance as shown to the user (None if never loaded)."""
        return self._cache.get(user_id)

    async def debit(self, user_id: str, amount: int, ref: Optional[str] = None) -> int:
        """
        Subtract ``amount`` from the user's balance.

        Args:
            user_id: User identifier
            amount: Positive number of units
            ref: Optional reference journaled with the entry (e.g. task id)

        Returns:
            New balance

        Raises:
            InsufficientFunds: amount exceeds the current balance
            PersistenceError: durable write failed; cache is rolled back
        """
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive, got {amount}")

        async with self._lock_for(user_id):
            balance = await self._load(user_id)
            if amount > balance:
                logger.info(
                    f"{correlation_tag()} [LEDGER] debit_rejected user={user_id} "
                    f"balance={balance} amount={amount}"
                )
                raise InsufficientFunds(user_id, balance, amount)

            new_balance = balance - amount
            self._cache[user_id] = new_balance
            try:
                await self.store.write_balance(user_id, new_balance)
            except Exception as e:
                self._cache[user_id] = balance
                logger.error(
                    f"{correlation_tag()} [LEDGER] debit_write_failed user={user_id} "
                    f"amount={amount} rolled_back_to={balance} error={e}"
                )
                raise PersistenceError(
                    f"Failed to persist debit of {amount} for user {user_id}: {e}",
                    balance=balance,
                ) from e

            self._journal("debit", user_id, amount, ref, new_balance, persisted=True)

        logger.info(
            f"{correlation_tag()} [LEDGER] debit user={user_id} amount={amount} "
            f"balance={new_balance} ref={ref}"
        )
        self._notify(user_id, new_balance)
        return new_balance

    async def credit(self, user_id: str, amount: int, ref: Optional[str] = None) -> int:
        """
        Add ``amount`` to the user's balance.

        A credit with an already journaled ``ref`` is a no-op. When the
        durable write fails the in-memory credit stands and
        PersistenceError carries the new balance.

        Returns:
            New balance
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")

        async with self._lock_for(user_id):
            if ref is not None and ref in self._refs:
                balance = await self._load(user_id)
                logger.info(
                    f"{correlation_tag()} [LEDGER] credit_duplicate user={user_id} ref={ref} (idempotent)"
                )
                return balance

            balance = await self._load(user_id)
            new_balance = balance + amount
            self._cache[user_id] = new_balance
            write_error: Optional[Exception] = None
            try:
                await self.store.write_balance(user_id, new_balance)
            except Exception as e:
                write_error = e

            self._journal("credit", user_id, amount, ref, new_balance, persisted=write_error is None)

        self._notify(user_id, new_balance)

        if write_error is not None:
            logger.error(
                f"{correlation_tag()} [LEDGER] credit_write_failed user={user_id} amount={amount} "
                f"in_memory_balance={new_balance} ref={ref} error={write_error}"
            )
            raise PersistenceError(
                f"Failed to persist credit of {amount} for user {user_id}: {write_error}",
                balance=new_balance,
            ) from write_error

        logger.info(
            f"{correlation_tag()} [LEDGER] credit user={user_id} amount={amount} "
            f"balance={new_balance} ref={ref}"
        )
        return new_balance

    def _journal(self, kind: str, user_id: str, amount: int, ref: Optional[str],
                 balance_after: int, persisted: bool) -> None:
        self._entries.append(LedgerEntry(
            kind=kind,
            user_id=user_id,
            amount=amount,
            ref=ref,
            balance_after=balance_after,
            persisted=persisted,
        ))
        if ref is not None:
            self._refs.add(ref)

    def entries(self, user_id: Optional[str] = None) -> List[LedgerEntry]:
        if user_id is None:
            return list(self._entries)
        return [e for e in self._entries if e.user_id == user_id]

    def has_entry(self, ref: str) -> bool:
        return ref in self._refs

    def subscribe(self, callback: BalanceObserver) -> Callable[[], None]:
        """
        Register a balance observer ``callback(user_id, new_balance)``.

        Returns:
            Function that removes the observer
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self, user_id: str, balance: int) -> None:
        for callback in list(self._observers):
            try:
                callback(user_id, balance)
            except Exception as e:
                logger.warning(f"[LEDGER] Balance observer failed for user {user_id}: {e}")
