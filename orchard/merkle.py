"""
Sorted-pair keccak Merkle trees.

Leaves are `keccak256(abi.encodePacked(address, uint256))` so a tree built here
produces the same root and proofs as the off-chain tooling used by distributors.
Each parent is the hash of its two children concatenated in ascending order, which
means a proof is just the list of siblings: no left/right flags are needed.
"""
from __future__ import annotations

from typing import Iterable, Sequence

from eth_utils import keccak, to_checksum_address, to_hex
from web3 import Web3

from orchard.models.types import (
    Bytes32,
    EthereumAddress,
    HashLike,
    MAX_UINT256,
    as_bytes32,
)
from orchard.models.Claim import DistributionTree, TreeClaim


def leaf_hash(recipient: EthereumAddress, balance: int) -> Bytes32:
    """Packed (address, uint256) leaf, identical to solidityKeccak256"""
    if balance < 0 or balance > MAX_UINT256:
        raise ValueError(f"Balance out of uint256 range: {balance}")
    return bytes(
        Web3.solidity_keccak(
            ["address", "uint256"], [to_checksum_address(recipient), balance]
        )
    )


def hash_pair(a: Bytes32, b: Bytes32) -> Bytes32:
    # equal length big endian values: byte order == numeric order
    if a <= b:
        return keccak(a + b)
    return keccak(b + a)


def process_proof(leaf: Bytes32, proof: Iterable[Bytes32]) -> Bytes32:
    computed = leaf
    for sibling in proof:
        computed = hash_pair(computed, sibling)
    return computed


def verify(leaf: Bytes32, proof: Sequence[Bytes32], root: Bytes32) -> bool:
    """Recompute the root from `leaf` and `proof` and compare against `root`"""
    return process_proof(leaf, proof) == root


class MerkleTree:
    """
    Builds every level of the tree up front.

    Leaves are sorted and de-duplicated first, so the root does not depend on the
    order in which recipients were listed. An unpaired node at the end of a level
    is promoted to the next level unchanged.
    """

    def __init__(self, leaves: Iterable[HashLike]):
        elements = sorted(set(as_bytes32(leaf) for leaf in leaves))
        if not elements:
            raise ValueError("Cannot build a merkle tree without leaves")
        self.elements: list[Bytes32] = elements
        self.layers: list[list[Bytes32]] = self._build_layers(elements)

    @staticmethod
    def _build_layers(elements: list[Bytes32]) -> list[list[Bytes32]]:
        layers = [elements]
        while len(layers[-1]) > 1:
            current = layers[-1]
            parents = []
            for i in range(0, len(current), 2):
                if i + 1 < len(current):
                    parents.append(hash_pair(current[i], current[i + 1]))
                else:
                    parents.append(current[i])
            layers.append(parents)
        return layers

    @property
    def root(self) -> Bytes32:
        return self.layers[-1][0]

    @property
    def hex_root(self) -> str:
        return to_hex(self.root)

    def proof(self, leaf: HashLike) -> list[Bytes32]:
        element = as_bytes32(leaf)
        try:
            index = self.elements.index(element)
        except ValueError:
            raise ValueError(f"Element {to_hex(element)} does not exist in the tree")

        proof = []
        for layer in self.layers[:-1]:
            sibling = index ^ 1
            if sibling < len(layer):
                proof.append(layer[sibling])
            index //= 2
        return proof

    def hex_proof(self, leaf: HashLike) -> list[str]:
        return [to_hex(p) for p in self.proof(leaf)]


def build_distribution(
    recipients: dict[EthereumAddress, int],
    asset: EthereumAddress,
    distributor: EthereumAddress,
    round_id: int,
) -> DistributionTree:
    """
    Generate the tree for a single round, alongside the proof each recipient
    will need to submit when claiming.
    :param `recipients`: mapping of recipient address to allocated balance
    """
    if not recipients:
        raise ValueError("No recipients to build the distribution from")

    balances = {
        to_checksum_address(address): int(balance)
        for address, balance in recipients.items()
    }
    leaves = {address: leaf_hash(address, b) for address, b in balances.items()}
    tree = MerkleTree(leaves.values())

    claims = {
        address: TreeClaim(balance=balances[address], proof=tree.hex_proof(leaf))
        for address, leaf in leaves.items()
    }

    return DistributionTree(
        asset=asset,
        distributor=distributor,
        distributionRoundId=round_id,
        merkleRoot=tree.hex_root,
        tokenTotal=sum(balances.values()),
        claims=claims,
    )
