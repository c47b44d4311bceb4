from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    Field,
    field_serializer,
    field_validator,
    model_validator,
    PositiveInt,
)

from orchard.models.Account import Channel, checksum
from orchard.models.types import (
    Bytes32,
    EthereumAddress,
    HexStr,
    MAX_UINT256,
    as_bytes32,
)


class ClaimRequest(BaseModel):
    """
    One entry in a batch claim. Field names mirror the payload generated
    alongside the merkle tree so claims files can be submitted as-is.
    :param `distributionRoundId`: the round the balance was allocated in
    :param `balance`: the full allocation for the beneficiary in that round
    :param `merkleProof`: sibling hashes from the leaf up to the root
    """

    distributionRoundId: PositiveInt
    balance: int = Field(ge=0, le=MAX_UINT256)
    distributorId: EthereumAddress
    assetId: EthereumAddress
    merkleProof: list[Bytes32] = []

    @field_validator("distributorId", "assetId")
    @classmethod
    def checksum_addresses(cls, input: str):
        return checksum(input)

    @field_validator("merkleProof", mode="before")
    @classmethod
    def coerce_proof(cls, proof):
        return [as_bytes32(p) for p in proof]

    @field_serializer("merkleProof")
    def serialize_proof(self, proof: list[Bytes32]) -> list[HexStr]:
        return ["0x" + p.hex() for p in proof]

    @property
    def channel(self) -> Channel:
        return Channel(asset=self.assetId, distributor=self.distributorId)


class DeliveryMode(str, Enum):
    # withdraw from custody straight to the beneficiary's wallet
    EXTERNAL = "external"

    # credit the beneficiary's internal balance inside the vault
    INTERNAL = "internal"

    # credit the target's internal balance, then call it with `data`
    CALLBACK = "callback"


class Delivery(BaseModel):
    """Where claimed rewards end up once the batch has been verified"""

    mode: DeliveryMode = DeliveryMode.EXTERNAL
    target: Optional[EthereumAddress] = None
    data: bytes = b""

    @field_validator("target")
    @classmethod
    def checksum_target(cls, target: Optional[str]):
        return None if target is None else checksum(target)

    @model_validator(mode="after")
    def ensure_target_if_callback(self) -> Delivery:
        if self.mode == DeliveryMode.CALLBACK and not self.target:
            raise ValueError("Must provide a callback target for callback delivery")
        elif self.mode != DeliveryMode.CALLBACK and self.target:
            raise ValueError(
                f"Cannot pass a target unless delivering by callback, passed {self.target}"
            )
        return self

    @staticmethod
    def external() -> Delivery:
        return Delivery(mode=DeliveryMode.EXTERNAL)

    @staticmethod
    def internal() -> Delivery:
        return Delivery(mode=DeliveryMode.INTERNAL)

    @staticmethod
    def callback(target: EthereumAddress, data: bytes = b"") -> Delivery:
        return Delivery(mode=DeliveryMode.CALLBACK, target=target, data=data)


class TreeClaim(BaseModel):
    """Allocation and proof for a single recipient within a round"""

    balance: int
    proof: list[HexStr]


class DistributionTree(BaseModel):
    """
    Output of the tree builder. `merkleRoot` and `tokenTotal` are what the
    distributor registers; `claims` are handed to recipients.
    """

    asset: EthereumAddress
    distributor: EthereumAddress
    distributionRoundId: PositiveInt
    merkleRoot: HexStr
    tokenTotal: int
    claims: dict[EthereumAddress, TreeClaim]

    @field_validator("asset", "distributor")
    @classmethod
    def checksum_addresses(cls, input: str):
        return checksum(input)

    def claim_request(self, address: EthereumAddress) -> ClaimRequest:
        claim = self.claims[checksum(address)]
        return ClaimRequest(
            distributionRoundId=self.distributionRoundId,
            balance=claim.balance,
            distributorId=self.distributor,
            assetId=self.asset,
            merkleProof=claim.proof,
        )
