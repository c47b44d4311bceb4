import pytest
from pydantic import ValidationError

from orchard.models import (
    Channel,
    ClaimRequest,
    Delivery,
    DeliveryMode,
    MAX_UINT256,
    Round,
    checksum,
)
from orchard.test.conftest import CALLBACK, DAI, LP1, REWARDER

PROOF = ["0x" + "ab" * 32, "0x" + "cd" * 32]


def _request(**overrides) -> dict:
    return {
        "distributionRoundId": 1,
        "balance": 1000,
        "distributorId": REWARDER.lower(),
        "assetId": DAI.lower(),
        "merkleProof": PROOF,
        **overrides,
    }


def test_checksum_address():
    assert checksum(LP1.lower()) == LP1
    for invalid in ["", "0x", "0x742d35cc6634c0532925a3b844bc454e4438f44", None, 123]:
        with pytest.raises(ValueError):
            checksum(invalid)


def test_claim_request_normalises_fields():
    request = ClaimRequest(**_request())

    assert request.assetId == DAI
    assert request.distributorId == REWARDER
    assert request.merkleProof == [bytes.fromhex("ab" * 32), bytes.fromhex("cd" * 32)]
    assert request.channel == Channel(asset=DAI, distributor=REWARDER)


def test_claim_request_serialises_proof_as_hex():
    dumped = ClaimRequest(**_request()).model_dump()
    assert dumped["merkleProof"] == PROOF
    assert ClaimRequest(**dumped) == ClaimRequest(**_request())


@pytest.mark.parametrize(
    "overrides",
    [
        {"distributionRoundId": 0},
        {"balance": -1},
        {"balance": MAX_UINT256 + 1},
        {"assetId": "0x1"},
        {"merkleProof": ["0x1234"]},
    ],
)
def test_claim_request_validation(overrides):
    with pytest.raises(ValidationError):
        ClaimRequest(**_request(**overrides))


def test_channel_is_hashable():
    a = Channel(asset=DAI.lower(), distributor=REWARDER)
    b = Channel(asset=DAI, distributor=REWARDER.lower())
    assert {a: 1}[b] == 1


def test_delivery_requires_target_for_callback():
    with pytest.raises(ValidationError, match="callback target"):
        Delivery(mode=DeliveryMode.CALLBACK)

    with pytest.raises(ValidationError, match="Cannot pass a target"):
        Delivery(mode=DeliveryMode.INTERNAL, target=CALLBACK)

    assert Delivery.callback(CALLBACK.lower(), b"x").target == CALLBACK


def test_round_rejects_zero_root_and_out_of_range_total():
    channel = Channel(asset=DAI, distributor=REWARDER)
    with pytest.raises(ValidationError):
        Round(channel=channel, roundId=1, root=bytes(32), totalAllocated=1)
    with pytest.raises(ValidationError):
        Round(channel=channel, roundId=1, root=b"\x01" * 32, totalAllocated=-1)
    with pytest.raises(ValidationError):
        Round(
            channel=channel, roundId=1, root=b"\x01" * 32, totalAllocated=MAX_UINT256 + 1
        )
    assert (
        Round(channel=channel, roundId=1, root=b"\x01" * 32, totalAllocated=MAX_UINT256)
        .totalAllocated
        == MAX_UINT256
    )
