from __future__ import annotations

import argparse
import json
import logging
import os
import re
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import base58
from eth_hash.auto import keccak

from .cli import load_environment, setup_logging
from .errors import CsvValidationError, EmptyTreeError, InvalidInputError


logger = logging.getLogger(__name__)

HASH_LENGTH = 32
_HASH_PATTERN = re.compile(r"[0-9a-fA-F]{64}")
PUBKEY_LENGTH = 32
MAX_INDEX = 2**32 - 1
MAX_AMOUNT = 2**64 - 1


def decode_pubkey(recipient: str) -> bytes:
    """Decode a base-58 public key into its 32 raw bytes."""
    try:
        decoded = base58.b58decode(recipient)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid Solana address: {recipient!r}") from exc
    if len(decoded) != PUBKEY_LENGTH:
        raise InvalidInputError(
            f"Invalid Solana address length for {recipient!r}: {len(decoded)} bytes"
        )
    return decoded


def encode_leaf(index: int, recipient_identity: bytes, amount: int) -> bytes:
    """Lay out ``index (u32 LE) | identity (32 bytes) | amount (u64 LE)``."""
    if not 0 <= index <= MAX_INDEX:
        raise InvalidInputError(f"Leaf index {index} does not fit in 32 bits")
    if not 0 <= amount <= MAX_AMOUNT:
        raise InvalidInputError(f"Leaf amount {amount} does not fit in 64 bits")
    if len(recipient_identity) != PUBKEY_LENGTH:
        raise InvalidInputError("Recipient identity must be exactly 32 bytes")
    return (
        index.to_bytes(4, "little")
        + bytes(recipient_identity)
        + amount.to_bytes(8, "little")
    )


def commit(index: int, recipient_identity: bytes, amount: int) -> bytes:
    # Hashed twice so a leaf can never be mistaken for an internal node.
    return keccak(keccak(encode_leaf(index, recipient_identity, amount)))


def hash_pair(left: bytes, right: bytes) -> bytes:
    if right < left:
        left, right = right, left
    return keccak(left + right)


def decode_hash(value: str) -> bytes:
    """Parse a hex encoded 32-byte hash, rejecting anything else."""
    if not isinstance(value, str):
        raise InvalidInputError(f"Hash must be a hex string, got {type(value).__name__}")
    if not _HASH_PATTERN.fullmatch(value):
        raise InvalidInputError(
            f"Hash must be {HASH_LENGTH * 2} hex characters: {value!r}"
        )
    return bytes.fromhex(value)


@dataclass(frozen=True)
class MerkleLeaf:
    index: int
    recipient: str
    amount: int

    def parse_pubkey(self) -> bytes:
        return decode_pubkey(self.recipient)

    def commitment(self) -> bytes:
        return commit(self.index, self.parse_pubkey(), self.amount)


@dataclass(frozen=True)
class MerkleProof:
    index: int
    leaf: str
    proof: List[str]


class MerkleTree:
    """Keccak-256 Merkle tree over airdrop leaves.

    ``layers[0]`` holds the leaf commitments in input order and every later
    layer holds the parents of the one below it. Pairs are hashed smaller
    value first; the trailing node of an odd layer is hashed with itself.
    Instances are never modified after construction.
    """

    def __init__(self, layers: Sequence[Sequence[bytes]]) -> None:
        self.layers = tuple(tuple(layer) for layer in layers)
        self._check_shape()

    @classmethod
    def build(cls, leaves: Sequence[MerkleLeaf]) -> "MerkleTree":
        if not leaves:
            raise EmptyTreeError("Cannot build merkle tree with empty leaves")
        current_layer = [leaf.commitment() for leaf in leaves]
        layers: List[List[bytes]] = [current_layer]
        while len(current_layer) > 1:
            next_layer: List[bytes] = []
            for i in range(0, len(current_layer), 2):
                left = current_layer[i]
                right = current_layer[i + 1] if i + 1 < len(current_layer) else left
                next_layer.append(hash_pair(left, right))
            current_layer = next_layer
            layers.append(current_layer)
        logger.debug(
            "Built merkle tree with %d leaves and %d levels", len(leaves), len(layers)
        )
        return cls(layers)

    def _check_shape(self) -> None:
        if not self.layers or not self.layers[0]:
            raise InvalidInputError("Merkle tree requires at least one leaf level")
        for depth, (lower, upper) in enumerate(zip(self.layers, self.layers[1:])):
            if len(upper) != (len(lower) + 1) // 2:
                raise InvalidInputError(
                    f"Level {depth + 1} has {len(upper)} nodes, expected {(len(lower) + 1) // 2}"
                )
        if len(self.layers[-1]) != 1:
            raise InvalidInputError("Top level of a merkle tree must hold exactly one node")
        for layer in self.layers:
            for node in layer:
                if len(node) != HASH_LENGTH:
                    raise InvalidInputError(f"Tree node must be {HASH_LENGTH} bytes")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MerkleTree):
            return NotImplemented
        return self.layers == other.layers

    def __hash__(self) -> int:
        return hash(self.layers)

    def __repr__(self) -> str:
        return f"MerkleTree(root={self.root_hex()!r}, leaves={len(self.layers[0])})"

    @property
    def root(self) -> bytes:
        return self.layers[-1][0]

    @property
    def leaves(self) -> Sequence[bytes]:
        return self.layers[0]

    def root_hex(self) -> str:
        return self.root.hex()

    @property
    def tree(self) -> List[List[str]]:
        return [[node.hex() for node in layer] for layer in self.layers]

    def get_proof(self, index: int) -> Optional[List[str]]:
        """Return the sibling path for ``index``, or ``None`` if out of range.

        The trailing node of an odd level was hashed with itself, so its own
        hash stands in for the missing sibling and every proof carries one
        entry per level below the root. Proofs for such trailing leaves are
        therefore one entry longer than the ones published by services that
        omit the self-paired level.
        """
        if index < 0 or index >= len(self.leaves):
            return None
        proof: List[str] = []
        for layer in self.layers[:-1]:
            pair_index = index ^ 1
            if pair_index >= len(layer):
                pair_index = index
            proof.append(layer[pair_index].hex())
            index //= 2
        return proof

    def build_hex_proof(self, index: int) -> MerkleProof:
        proof = self.get_proof(index)
        if proof is None:
            raise IndexError("Leaf index out of range")
        return MerkleProof(index=index, leaf=self.leaves[index].hex(), proof=proof)

    def build_all_hex_proofs(self) -> List[MerkleProof]:
        return [self.build_hex_proof(i) for i in range(len(self.leaves))]

    def dump(self) -> str:
        return json.dumps({"root": self.root_hex(), "tree": self.tree}, separators=(",", ":"))

    @classmethod
    def load(cls, data: str) -> "MerkleTree":
        try:
            payload = json.loads(data)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"Merkle tree snapshot is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict) or "root" not in payload or "tree" not in payload:
            raise InvalidInputError("Merkle tree snapshot must contain 'root' and 'tree'")
        levels = payload["tree"]
        if not isinstance(levels, list) or not all(isinstance(level, list) for level in levels):
            raise InvalidInputError("Merkle tree snapshot 'tree' must be a list of lists")
        tree = cls([[decode_hash(node) for node in level] for level in levels])
        if tree.root != decode_hash(payload["root"]):
            raise InvalidInputError("Merkle tree snapshot root does not match its top level")
        return tree


def verify_proof(leaf: MerkleLeaf, root: str, proof: Sequence[str]) -> bool:
    """Recompute the root from ``leaf`` and ``proof`` and compare it to ``root``.

    A proof that does not reconstruct the root yields ``False``; a proof entry
    or root that is not a 32-byte hex hash raises ``InvalidInputError``.
    """
    expected = decode_hash(root)
    siblings = [decode_hash(node) for node in proof]
    computed = leaf.commitment()
    for sibling in siblings:
        computed = hash_pair(computed, sibling)
    return computed == expected


def build_merkle_tree_from_csv(path: Path, decimals: int) -> Tuple[MerkleTree, List[MerkleLeaf]]:
    from .csv_validator import parse_campaign_csv

    parsed = parse_campaign_csv(path.read_text(), decimals)
    if not parsed.is_valid:
        raise CsvValidationError(parsed.validation_errors)
    leaves = parsed.to_leaves()
    return MerkleTree.build(leaves), leaves


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build an airdrop Merkle tree from a recipients CSV")
    parser.add_argument("csv", type=Path, help="CSV file with `address,amount` columns")
    parser.add_argument(
        "--decimals",
        type=int,
        default=os.getenv("AIRDROP_DECIMALS"),
        required=os.getenv("AIRDROP_DECIMALS") is None,
        help="Token decimals used to convert amounts to base units",
    )
    parser.add_argument("--out", type=Path, default=Path("merkle_proofs.json"), help="Output path for proofs")
    parser.add_argument(
        "--log-level",
        default=os.getenv("AIRDROP_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    return parser.parse_args()


def _run_cli() -> None:
    load_environment()
    args = _parse_args()
    setup_logging(args.log_level)
    tree, leaves = build_merkle_tree_from_csv(args.csv, args.decimals)
    output = {
        "root": tree.root_hex(),
        "merkle_tree": tree.dump(),
        "proofs": [
            dict(asdict(proof), recipient=leaf.recipient, amount=str(leaf.amount))
            for leaf, proof in zip(leaves, tree.build_all_hex_proofs())
        ],
    }
    args.out.write_text(json.dumps(output, indent=2))
    print(f"Merkle root: {tree.root_hex()}")
    print(f"Proofs written to {args.out}")


if __name__ == "__main__":
    _run_cli()
