"""Binary Merkle trees over page verification hashes."""
from data_accounting.merkle.tree import (
    MerkleNode,
    SiblingPair,
    build_merkle_tree,
    generate_proof,
    get_root,
    leaves_from_hashes,
    sibling_pairs,
    verify_proof,
)

__all__ = [
    "MerkleNode",
    "SiblingPair",
    "build_merkle_tree",
    "generate_proof",
    "get_root",
    "leaves_from_hashes",
    "sibling_pairs",
    "verify_proof",
]
