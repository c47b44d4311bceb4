"""
Command line entry point for distributors and recipients.

    orchard init orchard-conf.json 0xCustody
    orchard build_tree recipients.json tree-1.json --asset 0x.. --distributor 0x.. --round_id 1
    orchard deposit 0xDistributor 0xAsset 1000
    orchard register tree-1.json
    orchard claim 0xRecipient tree-1.json tree-2.json --mode internal
"""
from contextlib import contextmanager
from typing import Iterator, Optional

import fire
from eth_utils import to_hex

from orchard import config, utils
from orchard.dispatch import Vault
from orchard.ledger import ClaimLedger
from orchard.merkle import build_distribution
from orchard.models import DB, Delivery, DeliveryMode, DistributionTree, checksum


def _address(value) -> str:
    """fire parses unquoted 0x.. arguments as hex integers, undo that"""
    if isinstance(value, int):
        return checksum("0x" + format(value, "040x"))
    return checksum(value)


def _load_tree(path: str) -> DistributionTree:
    return DistributionTree.model_validate(utils.read_json(path))


@contextmanager
def _open(conf_path: Optional[str], save: bool = False) -> Iterator[ClaimLedger]:
    """Opens the ledger from config and persists the vault afterwards if `save`"""
    conf = config.load_conf(conf_path)
    config.setup_logging(conf)

    db = DB(conf.db_path)
    vault = Vault.from_rows(conf.custody, db.load_balances())
    try:
        yield ClaimLedger(db, vault)
        if save:
            db.save_balances(vault.to_rows())
    finally:
        db.close()


def init(path: str, custody: str, db_path: str = "orchard-db.json") -> None:
    conf = config.create_conf(path, _address(custody), db_path)
    print(f"😃 Created a new config at {path}, custody account {conf.custody}")


def build_tree(
    recipients: str, out: str, asset: str, distributor: str, round_id: int
) -> str:
    """Build the merkle tree for a round from a json of {address: balance}"""
    tree = build_distribution(
        {a: int(b) for a, b in utils.read_json(recipients).items()},
        _address(asset),
        _address(distributor),
        int(round_id),
    )
    utils.write_json(tree.model_dump(), out)
    print(
        f"🌳 Root {tree.merkleRoot} for {len(tree.claims)} recipients, "
        f"total {tree.tokenTotal}"
    )
    return tree.merkleRoot


def deposit(account: str, asset: str, amount: int, conf: Optional[str] = None) -> None:
    """Fund an external wallet in the reference vault"""
    with _open(conf, save=True) as ledger:
        ledger.dispatcher.deposit(_address(account), _address(asset), int(amount))
        print(f"💰 Deposited {amount} of {asset} to {account}")


def register(tree: str, conf: Optional[str] = None) -> None:
    """Seed a round from a tree file, pulling the total from the distributor"""
    t = _load_tree(tree)
    with _open(conf, save=True) as ledger:
        ledger.registry.register_round(
            t.asset, t.distributor, t.distributionRoundId, t.merkleRoot, t.tokenTotal
        )
    print(f"🚀 Registered round {t.distributionRoundId} with root {t.merkleRoot}")


def claim(
    beneficiary: str,
    *trees: str,
    mode: str = DeliveryMode.EXTERNAL.value,
    conf: Optional[str] = None,
) -> dict:
    """
    Claim every round in `trees` for `beneficiary` in a single batch.
    `mode` is external or internal. Callback delivery needs a registered target
    and is only available through `ClaimLedger.claim_distributions_with_callback`.
    """
    if DeliveryMode(mode) == DeliveryMode.CALLBACK:
        raise ValueError(
            "Callback delivery is not available from the command line, "
            "use external or internal"
        )
    beneficiary = _address(beneficiary)
    requests = [_load_tree(t).claim_request(beneficiary) for t in trees]
    delivery = Delivery(mode=DeliveryMode(mode))
    with _open(conf, save=True) as ledger:
        totals = ledger.settle_claims(beneficiary, beneficiary, requests, delivery)
    for asset, amount in totals.items():
        print(f"✅ Claimed {amount} of {asset}")
    return totals


def verify(tree: str, beneficiary: str, conf: Optional[str] = None) -> bool:
    t = _load_tree(tree)
    beneficiary = _address(beneficiary)
    request = t.claim_request(beneficiary)
    with _open(conf) as ledger:
        return ledger.verify_claim(
            t.asset,
            t.distributor,
            beneficiary,
            t.distributionRoundId,
            request.balance,
            request.merkleProof,
        )


def status(
    beneficiary: str,
    asset: str,
    distributor: str,
    from_round: int,
    to_round: int,
    conf: Optional[str] = None,
) -> list[bool]:
    with _open(conf) as ledger:
        return ledger.claim_status(
            _address(beneficiary),
            _address(asset),
            _address(distributor),
            int(from_round),
            int(to_round),
        )


def roots(
    asset: str,
    distributor: str,
    from_round: int,
    to_round: int,
    conf: Optional[str] = None,
) -> list[str]:
    with _open(conf) as ledger:
        found = ledger.roots(
            _address(asset), _address(distributor), int(from_round), int(to_round)
        )
        return [to_hex(r) for r in found]


def balances(account: str, asset: str, conf: Optional[str] = None) -> dict:
    with _open(conf) as ledger:
        vault = ledger.dispatcher
        return {
            "external": vault.balance_of(_address(account), _address(asset)),
            "internal": vault.internal_balance_of(_address(account), _address(asset)),
        }


def main():
    fire.Fire(
        {
            "init": init,
            "build_tree": build_tree,
            "deposit": deposit,
            "register": register,
            "claim": claim,
            "verify": verify,
            "status": status,
            "roots": roots,
            "balances": balances,
        }
    )


if __name__ == "__main__":
    main()
