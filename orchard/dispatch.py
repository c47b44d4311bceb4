"""
Asset movement is delegated to a custody vault. The ledger only ever talks to the
`AssetDispatcher` interface below; `Vault` is an in-memory reference implementation
used by the CLI and the tests.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from typing import Iterator, Protocol

from orchard.errors import DispatchFailure
from orchard.models import Delivery, DeliveryMode, EthereumAddress, checksum

logger = logging.getLogger("orchard.dispatch")

# (account, asset)
BalanceKey = tuple[EthereumAddress, EthereumAddress]


class RewardCallback(Protocol):
    """Anything registered as a callback target must expose this hook"""

    def distributor_callback(self, beneficiary: EthereumAddress, data: bytes) -> None:
        ...


class AssetDispatcher(ABC):
    """
    Moves verified amounts on the ledger's behalf.
    Implementations signal failure by raising `DispatchFailure`.
    """

    @abstractmethod
    def pull_into(
        self, asset: EthereumAddress, amount: int, source: EthereumAddress
    ) -> None:
        """Move `amount` of `asset` from `source` into the orchard's custody"""

    @abstractmethod
    def push(
        self,
        asset: EthereumAddress,
        amount: int,
        beneficiary: EthereumAddress,
        delivery: Delivery,
    ) -> None:
        """Move `amount` of `asset` out of custody according to `delivery`"""

    @abstractmethod
    def invoke_callback(
        self, target: EthereumAddress, beneficiary: EthereumAddress, data: bytes
    ) -> None:
        """Call the target once all pushes for a callback delivery are done"""

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """
        Movements made inside the block are undone if an exception escapes it.
        The default does nothing, for dispatchers that are atomic by other means.
        """
        yield


class Vault(AssetDispatcher):
    """
    Holds two books per (account, asset):
    - `external`: tokens in the account's own wallet
    - `internal`: balances held inside the vault on the account's behalf

    Rewards in custody sit in the internal book under the `custody` account.
    """

    def __init__(self, custody: EthereumAddress):
        self.custody = checksum(custody)
        self.external: defaultdict[BalanceKey, int] = defaultdict(int)
        self.internal: defaultdict[BalanceKey, int] = defaultdict(int)
        self.callbacks: dict[EthereumAddress, RewardCallback] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    @property
    def _journals(self) -> list[list[tuple[str, BalanceKey, int]]]:
        """Savepoint journals are per thread, a rollback only undoes its own movements"""
        if not hasattr(self._local, "journals"):
            self._local.journals = []
        return self._local.journals

    # queries

    def balance_of(self, account: EthereumAddress, asset: EthereumAddress) -> int:
        return self.external.get((checksum(account), checksum(asset)), 0)

    def internal_balance_of(
        self, account: EthereumAddress, asset: EthereumAddress
    ) -> int:
        return self.internal.get((checksum(account), checksum(asset)), 0)

    def custody_of(self, asset: EthereumAddress) -> int:
        return self.internal_balance_of(self.custody, asset)

    # bookkeeping

    def _book(self, name: str) -> defaultdict[BalanceKey, int]:
        return self.external if name == "external" else self.internal

    def _apply(self, name: str, key: BalanceKey, delta: int) -> None:
        book = self._book(name)
        with self._lock:
            if book[key] + delta < 0:
                raise DispatchFailure(
                    f"Insufficient {name} balance for {key[0]}: "
                    f"has {book[key]} of {key[1]}, needs {-delta}"
                )
            book[key] += delta
        if self._journals:
            self._journals[-1].append((name, key, delta))

    def _transfer(
        self, debit: tuple[str, BalanceKey], credit: tuple[str, BalanceKey], amount: int
    ) -> None:
        if amount < 0:
            raise DispatchFailure(f"Cannot transfer a negative amount: {amount}")
        self._apply(debit[0], debit[1], -amount)
        self._apply(credit[0], credit[1], amount)

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        self._journals.append([])
        try:
            yield
        except BaseException:
            journal = self._journals.pop()
            with self._lock:
                for name, key, delta in reversed(journal):
                    self._book(name)[key] -= delta
            if journal:
                logger.warning("Rolled back %d vault movements", len(journal))
            raise
        else:
            journal = self._journals.pop()
            # a committed inner savepoint still belongs to the enclosing one
            if self._journals:
                self._journals[-1].extend(journal)

    # setup

    def deposit(self, account: EthereumAddress, asset: EthereumAddress, amount: int):
        """Credit tokens to an external wallet, standing in for a mint or faucet"""
        self._apply("external", (checksum(account), checksum(asset)), amount)

    def register_callback(self, target: EthereumAddress, callback: RewardCallback):
        self.callbacks[checksum(target)] = callback

    # AssetDispatcher

    def pull_into(
        self, asset: EthereumAddress, amount: int, source: EthereumAddress
    ) -> None:
        asset = checksum(asset)
        self._transfer(
            ("external", (checksum(source), asset)),
            ("internal", (self.custody, asset)),
            amount,
        )
        logger.debug("Pulled %s of %s from %s", amount, asset, source)

    def push(
        self,
        asset: EthereumAddress,
        amount: int,
        beneficiary: EthereumAddress,
        delivery: Delivery,
    ) -> None:
        asset = checksum(asset)
        beneficiary = checksum(beneficiary)

        if delivery.mode == DeliveryMode.EXTERNAL:
            credit = ("external", (beneficiary, asset))
        elif delivery.mode == DeliveryMode.INTERNAL:
            credit = ("internal", (beneficiary, asset))
        else:
            credit = ("internal", (checksum(delivery.target), asset))

        self._transfer(("internal", (self.custody, asset)), credit, amount)
        logger.debug(
            "Pushed %s of %s to %s (%s)", amount, asset, credit[1][0], delivery.mode.value
        )

    def invoke_callback(
        self, target: EthereumAddress, beneficiary: EthereumAddress, data: bytes
    ) -> None:
        callback = self.callbacks.get(checksum(target))
        if callback is None:
            raise DispatchFailure(f"No callback registered at {target}")
        try:
            callback.distributor_callback(beneficiary, data)
        except Exception as e:
            raise DispatchFailure(f"Callback at {target} failed: {e}") from e

    # persistence

    def to_rows(self) -> list[dict]:
        return [
            {"book": name, "account": account, "asset": asset, "amount": amount}
            for name in ("external", "internal")
            for (account, asset), amount in self._book(name).items()
            if amount
        ]

    @staticmethod
    def from_rows(custody: EthereumAddress, rows: list[dict]) -> Vault:
        vault = Vault(custody)
        for row in rows:
            vault._book(row["book"])[(row["account"], row["asset"])] = int(row["amount"])
        return vault
