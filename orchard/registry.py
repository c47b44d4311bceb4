import logging

from orchard.dispatch import AssetDispatcher
from orchard.errors import DuplicateRound, UnknownRound
from orchard.models import (
    DB,
    Bytes32,
    Channel,
    Event,
    EventName,
    EthereumAddress,
    HashLike,
    Round,
    RoundId,
    ZERO_ROOT,
)

logger = logging.getLogger("orchard.registry")


class DistributionRegistry:
    """
    Append-only store of merkle roots, one sequence of rounds per (asset, distributor).
    Once a round has a root it can never be rewritten.
    """

    def __init__(self, db: DB, dispatcher: AssetDispatcher):
        self.db = db
        self.dispatcher = dispatcher

    def register_round(
        self,
        asset: EthereumAddress,
        distributor: EthereumAddress,
        round_id: RoundId,
        root: HashLike,
        total_allocated: int,
    ) -> Round:
        """
        Record the root for a new round and pull `total_allocated` of the asset
        from the distributor into custody. Nothing is recorded if the pull fails.
        :param `distributor`: the account seeding the round, funds are pulled from here
        """
        new_round = Round(
            channel=Channel(asset=asset, distributor=distributor),
            roundId=round_id,
            root=root,
            totalAllocated=total_allocated,
        )
        channel = new_round.channel

        with self.db.transaction(), self.dispatcher.savepoint():
            if self.db.get_round(channel, round_id) is not None:
                logger.warning(
                    "Rejected attempt to rewrite round %s for %s", round_id, channel
                )
                raise DuplicateRound(
                    f"Cannot rewrite merkle root for round {round_id} of "
                    f"{channel.asset} distributed by {channel.distributor}"
                )

            self.dispatcher.pull_into(
                channel.asset, new_round.totalAllocated, channel.distributor
            )
            self.db.insert_round(new_round)
            self.db.append_event(
                Event(
                    name=EventName.ROUND_REGISTERED,
                    args={
                        "asset": channel.asset,
                        "distributor": channel.distributor,
                        "roundId": round_id,
                        "amount": new_round.totalAllocated,
                    },
                )
            )

        logger.info(
            "Registered round %s for %s from %s, %s allocated",
            round_id,
            channel.asset,
            channel.distributor,
            new_round.totalAllocated,
        )
        return new_round

    def get_round(
        self, asset: EthereumAddress, distributor: EthereumAddress, round_id: RoundId
    ) -> Round:
        channel = Channel(asset=asset, distributor=distributor)
        with self.db.lock:
            found = self.db.get_round(channel, round_id)
        if found is None:
            raise UnknownRound(
                f"Round {round_id} has not been registered for "
                f"{channel.asset} by {channel.distributor}"
            )
        return found

    def get_root(
        self, asset: EthereumAddress, distributor: EthereumAddress, round_id: RoundId
    ) -> Bytes32:
        return self.get_round(asset, distributor, round_id).root

    def roots(
        self,
        asset: EthereumAddress,
        distributor: EthereumAddress,
        from_round: RoundId,
        to_round: RoundId,
    ) -> list[Bytes32]:
        """
        Roots for every round in the inclusive range.
        Rounds that have not been seeded yet come back as the zero root.
        """
        if from_round > to_round:
            raise ValueError(f"Invalid round range {from_round}-{to_round}")

        channel = Channel(asset=asset, distributor=distributor)
        roots = []
        with self.db.lock:
            for round_id in range(from_round, to_round + 1):
                found = self.db.get_round(channel, round_id)
                roots.append(ZERO_ROOT if found is None else found.root)
        return roots
