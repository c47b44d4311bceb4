import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from tinydb import TinyDB, where
from tinydb.storages import MemoryStorage

from orchard.models.Account import Channel
from orchard.models.Event import Event, EventName
from orchard.models.Round import Round
from orchard.models.types import EthereumAddress, RoundId


def round_key(channel: Channel, round_id: RoundId) -> str:
    """Canonical composite key for a (channel, round) pair"""
    return f"{channel.asset}:{channel.distributor}:{round_id}"


def claim_key(channel: Channel, round_id: RoundId, recipient: EthereumAddress) -> str:
    return f"{round_key(channel, round_id)}:{recipient}"


@dataclass
class Journal:
    """Document ids written inside a transaction, per table"""

    rounds: list[int] = field(default_factory=list)
    claims: list[int] = field(default_factory=list)
    events: list[int] = field(default_factory=list)

    def extend(self, other: "Journal") -> None:
        self.rounds += other.rounds
        self.claims += other.claims
        self.events += other.events


class DB(TinyDB):
    """
    Persistent key-value store behind the registry and the ledger.

    Tables:
    - `rounds`: one document per registered round, keyed by `round_key`
    - `claims`: one document per settled claim, keyed by `claim_key`.
       A missing document means the claim is still open.
    - `events`: append-only audit log
    - `balances`: snapshot of the reference vault, only used by the CLI

    Pass no path to get an in-memory store.
    """

    def __init__(self, path: Optional[str] = None, drop=False, **kwargs):
        self._lock = threading.RLock()
        self._journals: list[Journal] = []

        if path is None:
            super().__init__(storage=MemoryStorage, **kwargs)
        else:
            # check if the directory exists
            create_dirs = self.exists(path) == False
            super().__init__(path, indent=4, create_dirs=create_dirs, **kwargs)

        if drop:
            self.drop_tables()

    @staticmethod
    def exists(path: str):
        return os.path.exists(path)

    @property
    def lock(self):
        """Held by writers for the whole of a transaction, readers take it too"""
        return self._lock

    # transactions

    @contextmanager
    def transaction(self) -> Iterator[Journal]:
        """
        Serialises writers and removes every document inserted inside the block
        if an exception escapes it. Transactions nest: the same thread may re-enter,
        and a committed inner transaction is undone if the outer one fails.
        """
        with self._lock:
            journal = Journal()
            self._journals.append(journal)
            try:
                yield journal
            except BaseException:
                self._journals.pop()
                self._rollback(journal)
                raise
            else:
                self._journals.pop()
                if self._journals:
                    self._journals[-1].extend(journal)

    def _rollback(self, journal: Journal) -> None:
        for name in ("events", "claims", "rounds"):
            doc_ids = getattr(journal, name)
            if doc_ids:
                self.table(name).remove(doc_ids=doc_ids)

    def _record(self, name: str, doc_id: int) -> int:
        if self._journals:
            getattr(self._journals[-1], name).append(doc_id)
        return doc_id

    # rounds

    def get_round(self, channel: Channel, round_id: RoundId) -> Optional[Round]:
        doc = self.table("rounds").get(where("key") == round_key(channel, round_id))
        if doc is None:
            return None
        return Round(
            channel=channel,
            roundId=doc["roundId"],
            root=doc["root"],
            totalAllocated=doc["totalAllocated"],
        )

    def insert_round(self, r: Round) -> int:
        doc_id = self.table("rounds").insert(
            {"key": round_key(r.channel, r.roundId), **r.model_dump(mode="json")}
        )
        return self._record("rounds", doc_id)

    # claims

    def is_claimed(
        self, channel: Channel, round_id: RoundId, recipient: EthereumAddress
    ) -> bool:
        key = claim_key(channel, round_id, recipient)
        return self.table("claims").contains(where("key") == key)

    def insert_claim(
        self,
        channel: Channel,
        round_id: RoundId,
        recipient: EthereumAddress,
        amount: int,
    ) -> int:
        doc_id = self.table("claims").insert(
            {
                "key": claim_key(channel, round_id, recipient),
                "asset": channel.asset,
                "distributor": channel.distributor,
                "roundId": round_id,
                "recipient": recipient,
                "amount": amount,
            }
        )
        return self._record("claims", doc_id)

    # events

    def append_event(self, event: Event) -> int:
        doc_id = self.table("events").insert(event.model_dump(mode="json"))
        return self._record("events", doc_id)

    def events(self, name: Optional[EventName] = None) -> list[Event]:
        table = self.table("events")
        if name is None:
            docs = table.all()
        else:
            docs = table.search(where("name") == name.value)
        return [Event(**d) for d in docs]

    # vault snapshot

    def load_balances(self) -> list[dict]:
        return self.table("balances").all()

    def save_balances(self, rows: list[dict]) -> None:
        self.table("balances").truncate()
        self.table("balances").insert_multiple(rows)
