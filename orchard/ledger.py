"""
The claim ledger settles batches of merkle claims against the registry.

A batch is all or nothing: every request is verified and marked as claimed before
any funds move, and any failure (including a failed transfer or a reverting
callback) rolls back every flag, event and transfer written during the call.
Setting the flags before dispatching means a callback that re-enters the ledger
sees the claims as already settled.
"""
import logging
from typing import Any, Iterable, Optional, Union

from orchard import merkle
from orchard.dispatch import AssetDispatcher
from orchard.errors import (
    AlreadyClaimed,
    DispatchFailure,
    InvalidProof,
    UnauthorizedClaimant,
)
from orchard.models import (
    DB,
    Bytes32,
    Channel,
    ClaimRequest,
    Delivery,
    DeliveryMode,
    Event,
    EventName,
    EthereumAddress,
    HashLike,
    RoundId,
    as_bytes32,
    checksum,
)
from orchard.registry import DistributionRegistry

logger = logging.getLogger("orchard.ledger")

ClaimInput = Union[ClaimRequest, dict[str, Any]]


class ClaimLedger:
    def __init__(self, db: DB, dispatcher: AssetDispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.registry = DistributionRegistry(db, dispatcher)

    # queries

    def verify_claim(
        self,
        asset: EthereumAddress,
        distributor: EthereumAddress,
        beneficiary: EthereumAddress,
        round_id: RoundId,
        balance: int,
        proof: list[HashLike],
    ) -> bool:
        """Read-only check that (beneficiary, balance) is a leaf of the round's tree"""
        channel = Channel(asset=asset, distributor=distributor)
        with self.db.lock:
            found = self.db.get_round(channel, round_id)
        if found is None:
            return False
        leaf = merkle.leaf_hash(beneficiary, balance)
        return merkle.verify(leaf, [as_bytes32(p) for p in proof], found.root)

    def is_claimed(
        self,
        asset: EthereumAddress,
        distributor: EthereumAddress,
        round_id: RoundId,
        recipient: EthereumAddress,
    ) -> bool:
        channel = Channel(asset=asset, distributor=distributor)
        with self.db.lock:
            return self.db.is_claimed(channel, round_id, checksum(recipient))

    def claim_status(
        self,
        recipient: EthereumAddress,
        asset: EthereumAddress,
        distributor: EthereumAddress,
        from_round: RoundId,
        to_round: RoundId,
    ) -> list[bool]:
        if from_round > to_round:
            raise ValueError(f"Invalid round range {from_round}-{to_round}")
        channel = Channel(asset=asset, distributor=distributor)
        recipient = checksum(recipient)
        with self.db.lock:
            return [
                self.db.is_claimed(channel, round_id, recipient)
                for round_id in range(from_round, to_round + 1)
            ]

    def roots(
        self,
        asset: EthereumAddress,
        distributor: EthereumAddress,
        from_round: RoundId,
        to_round: RoundId,
    ) -> list[Bytes32]:
        return self.registry.roots(asset, distributor, from_round, to_round)

    # settlement

    def _settle_request(self, beneficiary: EthereumAddress, request: ClaimRequest):
        channel = request.channel
        round_id = request.distributionRoundId

        root = self.registry.get_root(channel.asset, channel.distributor, round_id)

        leaf = merkle.leaf_hash(beneficiary, request.balance)
        if not merkle.verify(leaf, request.merkleProof, root):
            raise InvalidProof(
                f"Incorrect merkle proof for {beneficiary} in round {round_id} "
                f"of {channel.asset}"
            )

        if self.db.is_claimed(channel, round_id, beneficiary):
            raise AlreadyClaimed(
                f"{beneficiary} cannot claim round {round_id} of {channel.asset} twice"
            )

        self.db.insert_claim(channel, round_id, beneficiary, request.balance)
        self.db.append_event(
            Event(
                name=EventName.CLAIM_SETTLED,
                args={
                    "beneficiary": beneficiary,
                    "asset": channel.asset,
                    "distributor": channel.distributor,
                    "roundId": round_id,
                    "amount": request.balance,
                },
            )
        )

    def _dispatch(
        self,
        beneficiary: EthereumAddress,
        totals: dict[EthereumAddress, int],
        delivery: Delivery,
    ) -> None:
        try:
            for asset, amount in totals.items():
                self.dispatcher.push(asset, amount, beneficiary, delivery)

            if delivery.mode == DeliveryMode.CALLBACK:
                self.dispatcher.invoke_callback(
                    delivery.target, beneficiary, delivery.data
                )
        except DispatchFailure:
            raise
        except Exception as e:
            raise DispatchFailure(f"Dispatch to {beneficiary} failed: {e}") from e

        if delivery.mode == DeliveryMode.CALLBACK:
            self.db.append_event(
                Event(
                    name=EventName.CALLBACK_INVOKED,
                    args={"target": delivery.target, "beneficiary": beneficiary},
                )
            )

    def settle_claims(
        self,
        beneficiary: EthereumAddress,
        caller: EthereumAddress,
        requests: Iterable[ClaimInput],
        delivery: Optional[Delivery] = None,
    ) -> dict[EthereumAddress, int]:
        """
        Verify and settle a batch of claims for a single beneficiary.

        :param `caller`: whoever submitted the batch, must be the beneficiary
        :param `requests`: processed in order, may span several rounds and channels
        :param `delivery`: defaults to the beneficiary's external wallet
        :returns: total amount dispatched per asset
        """
        beneficiary = checksum(beneficiary)
        if checksum(caller) != beneficiary:
            raise UnauthorizedClaimant(
                f"{caller} cannot claim for {beneficiary}: user must claim own balance"
            )

        delivery = delivery or Delivery.external()
        claims = [
            r if isinstance(r, ClaimRequest) else ClaimRequest.model_validate(r)
            for r in requests
        ]

        try:
            with self.db.transaction(), self.dispatcher.savepoint():
                totals: dict[EthereumAddress, int] = {}
                for claim in claims:
                    self._settle_request(beneficiary, claim)
                    totals[claim.assetId] = totals.get(claim.assetId, 0) + claim.balance

                # every flag is set before anything leaves custody
                self._dispatch(beneficiary, totals, delivery)
        except Exception as e:
            logger.warning(
                "Rejected batch of %d claims for %s: %s", len(claims), beneficiary, e
            )
            raise

        logger.info(
            "Settled %d claims for %s via %s: %s",
            len(claims),
            beneficiary,
            delivery.mode.value,
            totals,
        )
        return totals

    def claim_distributions(
        self,
        beneficiary: EthereumAddress,
        caller: EthereumAddress,
        requests: Iterable[ClaimInput],
    ) -> dict[EthereumAddress, int]:
        return self.settle_claims(beneficiary, caller, requests, Delivery.external())

    def claim_distributions_to_internal_balance(
        self,
        beneficiary: EthereumAddress,
        caller: EthereumAddress,
        requests: Iterable[ClaimInput],
    ) -> dict[EthereumAddress, int]:
        return self.settle_claims(beneficiary, caller, requests, Delivery.internal())

    def claim_distributions_with_callback(
        self,
        beneficiary: EthereumAddress,
        caller: EthereumAddress,
        requests: Iterable[ClaimInput],
        target: EthereumAddress,
        data: bytes = b"",
    ) -> dict[EthereumAddress, int]:
        return self.settle_claims(
            beneficiary, caller, requests, Delivery.callback(target, data)
        )
