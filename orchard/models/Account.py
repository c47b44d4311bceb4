from pydantic import BaseModel, field_validator
import eth_utils as eth

from orchard.models.types import EthereumAddress


def checksum(address: str) -> EthereumAddress:
    """Normalise to EIP-55, raising `ValueError` for anything that isn't an address"""
    if not isinstance(address, str) or not eth.is_hex_address(address):
        raise ValueError(f"Invalid address {address!r}")
    return eth.to_checksum_address(address)


class Channel(BaseModel, frozen=True):
    """
    Rounds are namespaced by the asset being distributed and the distributor
    who funded them. Two distributors can use the same round ids for the same
    asset without colliding.
    """

    asset: EthereumAddress
    distributor: EthereumAddress

    @field_validator("asset", "distributor")
    @classmethod
    def checksum_addresses(cls, input: str):
        return checksum(input)
