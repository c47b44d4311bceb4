from dataclasses import dataclass, field
from typing import Callable, Optional

import pytest
from eth_utils import to_checksum_address

from orchard.dispatch import Vault
from orchard.ledger import ClaimLedger
from orchard.merkle import MerkleTree, leaf_hash
from orchard.models import DB, ClaimRequest, Delivery

_addresses = [
    to_checksum_address(a)
    for a in [
        "0x9bc33f6155eFAcc290c3C50E9B5b24b668562732",
        "0xfDe38ad4bBbeC867e6cb4Bb31FbFB2074c959A83",
        "0x8BB4C0b502f869af3B25166930507a6E8c3038D4",
        "0x7Ac54A0406FA2B465E0D57C66597BE83A4b149fC",
        "0xdeA708968f8dd520f5e2F0aB6785F28c98521ca8",
        "0x742d35Cc6634C0532925a3b844Bc454e4438f44e",
        "0x1111111111111111111111111111111111111111",
        "0x2222222222222222222222222222222222222222",
    ]
]

DAI, WETH, REWARDER, LP1, LP2, OTHER, CUSTODY, CALLBACK = _addresses

REWARDER_INITIAL_BALANCE = 100 * 10**18


class RecordingVault(Vault):
    """Vault that remembers every push so tests can count dispatches"""

    def __init__(self, custody):
        super().__init__(custody)
        self.pushes: list[tuple[str, int, str, Delivery]] = []

    def push(self, asset, amount, beneficiary, delivery):
        super().push(asset, amount, beneficiary, delivery)
        self.pushes.append((asset, amount, beneficiary, delivery))


@dataclass
class MockRewardCallback:
    """
    Stands in for a contract receiving rewards by callback.
    `hook` runs inside the callback, eg: to re-enter the ledger.
    """

    received: list[tuple[str, bytes]] = field(default_factory=list)
    hook: Optional[Callable[[str, bytes], None]] = None

    def distributor_callback(self, beneficiary: str, data: bytes) -> None:
        self.received.append((beneficiary, data))
        if self.hook:
            self.hook(beneficiary, data)


@pytest.fixture
def db() -> DB:
    return DB()


@pytest.fixture
def vault() -> RecordingVault:
    v = RecordingVault(CUSTODY)
    for token in (DAI, WETH):
        v.deposit(REWARDER, token, REWARDER_INITIAL_BALANCE)
    return v


@pytest.fixture
def ledger(db: DB, vault: RecordingVault) -> ClaimLedger:
    return ClaimLedger(db, vault)


@pytest.fixture
def callback(vault: RecordingVault) -> MockRewardCallback:
    cb = MockRewardCallback()
    vault.register_callback(CALLBACK, cb)
    return cb


def seed(
    ledger: ClaimLedger,
    allocations: dict[str, int],
    round_id: int = 1,
    asset: str = DAI,
    distributor: str = REWARDER,
    total: Optional[int] = None,
) -> MerkleTree:
    """Build a tree over `allocations`, register it and return the tree"""
    tree = MerkleTree([leaf_hash(a, b) for a, b in allocations.items()])
    ledger.registry.register_round(
        asset,
        distributor,
        round_id,
        tree.root,
        sum(allocations.values()) if total is None else total,
    )
    return tree


def make_claim(
    tree: MerkleTree,
    account: str,
    balance: int,
    round_id: int = 1,
    asset: str = DAI,
    distributor: str = REWARDER,
    proof_balance: Optional[int] = None,
) -> ClaimRequest:
    """Claim for `balance`, with a proof taken for `proof_balance` if given"""
    leaf = leaf_hash(account, balance if proof_balance is None else proof_balance)
    return ClaimRequest(
        distributionRoundId=round_id,
        balance=balance,
        distributorId=distributor,
        assetId=asset,
        merkleProof=tree.proof(leaf),
    )
