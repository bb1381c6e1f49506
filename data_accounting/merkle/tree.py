"""Binary Merkle tree construction and sibling-pair proofs."""
from __future__ import annotations

from dataclasses import dataclass

from data_accounting.hashing.hasher import DEFAULT_HASH_ALGORITHM, hash_concat


@dataclass
class MerkleNode:
    """In-memory node used during tree construction."""
    hash: str
    level: int
    position: int
    left: "MerkleNode | None" = None
    right: "MerkleNode | None" = None


@dataclass(frozen=True)
class SiblingPair:
    """Both children of one internal node. H(left_leaf + right_leaf) is the parent."""
    left_leaf: str
    right_leaf: str

    def contains(self, value: str) -> bool:
        return value == self.left_leaf or value == self.right_leaf


def leaves_from_hashes(hashes: list[str]) -> list[MerkleNode]:
    return [MerkleNode(hash=h, level=0, position=i) for i, h in enumerate(hashes)]


def build_merkle_tree(
    leaves: list[MerkleNode], algorithm: str = DEFAULT_HASH_ALGORITHM,
) -> list[MerkleNode]:
    """Build a binary Merkle tree from leaf nodes.

    Returns a flat list of all nodes (leaves + intermediates + root).
    The last element is the root.

    If there are no leaves, returns an empty list.
    If odd number of nodes at a level, the last node is duplicated.
    """
    if not leaves:
        return []

    if len(leaves) == 1:
        return list(leaves)

    all_nodes: list[MerkleNode] = list(leaves)
    current_level = list(leaves)

    level = 1
    while len(current_level) > 1:
        next_level: list[MerkleNode] = []
        if len(current_level) % 2 == 1:
            current_level.append(current_level[-1])

        for i in range(0, len(current_level), 2):
            left = current_level[i]
            right = current_level[i + 1]
            parent = MerkleNode(
                hash=hash_concat(left.hash, right.hash, algorithm),
                level=level,
                position=i // 2,
                left=left,
                right=right,
            )
            next_level.append(parent)
            all_nodes.append(parent)

        current_level = next_level
        level += 1

    return all_nodes


def get_root(nodes: list[MerkleNode]) -> MerkleNode | None:
    """Get the root node (highest level) from a flat node list."""
    if not nodes:
        return None
    return max(nodes, key=lambda n: n.level)


def sibling_pairs(nodes: list[MerkleNode]) -> list[SiblingPair]:
    """Every internal node's children, bottom level first."""
    internal = [n for n in nodes if n.left is not None and n.right is not None]
    internal.sort(key=lambda n: (n.level, n.position))
    return [SiblingPair(left_leaf=n.left.hash, right_leaf=n.right.hash) for n in internal]


def generate_proof(nodes: list[MerkleNode], leaf_hash: str) -> list[SiblingPair]:
    """Generate the sibling-pair path from a leaf up to the root.

    Returns an empty list when the leaf is not part of the tree.
    """
    leaf = None
    for node in nodes:
        if node.level == 0 and node.hash == leaf_hash:
            leaf = node
            break

    if leaf is None:
        return []

    parent_map: dict[int, MerkleNode] = {}
    for node in nodes:
        if node.left is not None:
            parent_map.setdefault(id(node.left), node)
        if node.right is not None:
            parent_map.setdefault(id(node.right), node)

    path: list[SiblingPair] = []
    current = leaf
    while id(current) in parent_map:
        parent = parent_map[id(current)]
        path.append(SiblingPair(left_leaf=parent.left.hash, right_leaf=parent.right.hash))
        current = parent

    return path


def verify_proof(
    leaf_hash: str,
    proof: list[SiblingPair],
    expected_root: str,
    algorithm: str = DEFAULT_HASH_ALGORITHM,
) -> bool:
    """Replay a sibling-pair proof and compare the result to ``expected_root``.

    Each pair must contain the value carried up from the previous step.
    """
    current = leaf_hash
    for pair in proof:
        if not pair.contains(current):
            return False
        current = hash_concat(pair.left_leaf, pair.right_leaf, algorithm)
    return current == expected_root
