import pytest
from eth_utils import keccak, to_bytes, to_hex

from orchard.merkle import (
    MerkleTree,
    build_distribution,
    hash_pair,
    leaf_hash,
    process_proof,
    verify,
)
from orchard.models import as_bytes32
from orchard.test.conftest import _addresses, DAI, REWARDER


def _flip(value: bytes, bit: int = 0) -> bytes:
    mutated = bytearray(value)
    mutated[bit // 8] ^= 1 << (bit % 8)
    return bytes(mutated)


def _leaves(n: int) -> list[bytes]:
    return [leaf_hash(_addresses[i % len(_addresses)], 1000 + i) for i in range(n)]


def test_leaf_is_packed_address_and_uint256():
    address = _addresses[0]
    expected = keccak(to_bytes(hexstr=address) + (9876).to_bytes(32, "big"))
    assert leaf_hash(address, 9876) == expected


def test_leaf_ignores_address_case():
    assert leaf_hash(_addresses[0].lower(), 1) == leaf_hash(_addresses[0], 1)


@pytest.mark.parametrize("balance", [-1, 2**256])
def test_leaf_rejects_out_of_range_balance(balance):
    with pytest.raises(ValueError):
        leaf_hash(_addresses[0], balance)


def test_hash_pair_is_order_independent():
    a, b = _leaves(2)
    assert hash_pair(a, b) == hash_pair(b, a)
    assert hash_pair(a, b) == keccak(min(a, b) + max(a, b))


def test_single_leaf_tree():
    (leaf,) = _leaves(1)
    tree = MerkleTree([leaf])
    assert tree.root == leaf
    assert tree.proof(leaf) == []
    assert verify(leaf, [], tree.root)


@pytest.mark.parametrize("n", [2, 3, 4, 5, 7, 8, 13])
def test_every_leaf_verifies(n):
    leaves = _leaves(n)
    tree = MerkleTree(leaves)
    for leaf in leaves:
        assert verify(leaf, tree.proof(leaf), tree.root)


def test_root_does_not_depend_on_leaf_order():
    leaves = _leaves(6)
    assert MerkleTree(leaves).root == MerkleTree(list(reversed(leaves))).root


@pytest.mark.parametrize("bit", [0, 7, 128, 255])
def test_single_bit_mutations_fail(bit):
    leaves = _leaves(5)
    tree = MerkleTree(leaves)
    leaf = leaves[2]
    proof = tree.proof(leaf)

    assert not verify(_flip(leaf, bit), proof, tree.root)
    assert not verify(leaf, proof, _flip(tree.root, bit))
    for i in range(len(proof)):
        mutated = list(proof)
        mutated[i] = _flip(proof[i], bit)
        assert not verify(leaf, mutated, tree.root)


def test_process_proof_matches_root():
    leaves = _leaves(4)
    tree = MerkleTree(leaves)
    assert process_proof(leaves[0], tree.proof(leaves[0])) == tree.root


def test_hex_helpers():
    leaves = _leaves(3)
    tree = MerkleTree(leaves)
    assert tree.hex_root == to_hex(tree.root)
    assert tree.hex_proof(leaves[1]) == [to_hex(p) for p in tree.proof(leaves[1])]


def test_tree_errors():
    with pytest.raises(ValueError):
        MerkleTree([])
    tree = MerkleTree(_leaves(2))
    with pytest.raises(ValueError, match="does not exist"):
        tree.proof(bytes(32))


@pytest.mark.parametrize("value", ["0x1234", b"\x00" * 31, b"\x00" * 33, 1234])
def test_as_bytes32_rejects_bad_input(value):
    with pytest.raises(ValueError):
        as_bytes32(value)


def test_as_bytes32_accepts_hex_and_bytes():
    raw = bytes(range(32))
    assert as_bytes32(raw) == raw
    assert as_bytes32(to_hex(raw)) == raw


def test_build_distribution():
    recipients = {_addresses[2].lower(): 1000, _addresses[3]: 2000}
    tree = build_distribution(recipients, DAI, REWARDER, 1)

    assert tree.tokenTotal == 3000
    assert tree.distributionRoundId == 1
    assert set(tree.claims.keys()) == {_addresses[2], _addresses[3]}

    for address, claim in tree.claims.items():
        leaf = leaf_hash(address, claim.balance)
        proof = [as_bytes32(p) for p in claim.proof]
        assert verify(leaf, proof, as_bytes32(tree.merkleRoot))

    request = tree.claim_request(_addresses[2].lower())
    assert request.balance == 1000
    assert request.assetId == DAI


def test_build_distribution_requires_recipients():
    with pytest.raises(ValueError):
        build_distribution({}, DAI, REWARDER, 1)
