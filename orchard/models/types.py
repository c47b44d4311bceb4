from typing import Union

from eth_utils import to_bytes

# type aliases for clarity
EthereumAddress = str
Bytes32 = bytes
HexStr = str
BigNumber = int  # uint256, kept as a python int
RoundId = int

# roots and proof elements may arrive as raw bytes or 0x-prefixed hex
HashLike = Union[Bytes32, HexStr]

MAX_UINT256 = 2**256 - 1
ZERO_ROOT: Bytes32 = bytes(32)


def as_bytes32(value: HashLike) -> Bytes32:
    """
    Coerce a 0x-prefixed hex string or raw bytes into a 32 byte digest.
    Raises `ValueError` for anything of the wrong length.
    """
    if isinstance(value, str):
        raw = to_bytes(hexstr=value)
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise ValueError(f"Expected hex string or bytes, got {type(value).__name__}")
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}")
    return raw
