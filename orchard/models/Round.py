from pydantic import BaseModel, Field, field_serializer, field_validator, PositiveInt

from orchard.models.Account import Channel
from orchard.models.types import Bytes32, MAX_UINT256, ZERO_ROOT, as_bytes32


class Round(BaseModel):
    """
    A single committed distribution.
    :param `channel`: the (asset, distributor) pair the round belongs to
    :param `roundId`: distributor assigned, 1-based
    :param `root`: merkle root over every (recipient, balance) leaf
    :param `totalAllocated`: amount pulled into custody when the round was seeded
    """

    channel: Channel
    roundId: PositiveInt
    root: Bytes32
    totalAllocated: int = Field(ge=0, le=MAX_UINT256)

    @field_validator("root", mode="before")
    @classmethod
    def coerce_root(cls, root):
        root = as_bytes32(root)
        if root == ZERO_ROOT:
            raise ValueError("Merkle root cannot be empty")
        return root

    @field_serializer("root")
    def serialize_root(self, root: Bytes32) -> str:
        return "0x" + root.hex()
