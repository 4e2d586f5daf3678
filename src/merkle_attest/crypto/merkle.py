"""
Merkle Attest - Keyed Merkle Commitment

Builds a binary SHA-256 hash tree over a keyed dataset (integer key to a
single character) and exposes the root digest, value lookup, the
leaf-to-root digest trail and sibling-based inclusion proofs.

Construction rules:
- Leaf digest: SHA-256 of the serialized (key, value) pair
- Internal digest: SHA-256(left.digest || right.digest), left before right
- Leaves are ordered by ascending key before every rebuild, so the root
  depends only on the (key, value) set and not on insertion order

All nodes of one build pass live in a NodeArena and refer to their children
and parent by index. A rebuild replaces the arena wholesale; parent indices
and trails captured before an insertion describe the previous generation.

For odd numbers of nodes on a level, the last node is promoted unchanged
(no re-hashing, no padding). The root digest then does not authenticate the
leaf count. OddNodeStrategy.DUPLICATE hashes the trailing node with itself
instead.
"""

import hashlib
import struct
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

DIGEST_SIZE = 32

# Returned by lookups of keys that were never inserted
MISSING_VALUE = "_"

_KEY_MIN = -(2**63)
_KEY_MAX = 2**63 - 1


class ProofDirection(str, Enum):
    """Side of the sibling relative to the path node."""

    LEFT = "L"
    RIGHT = "R"


class LeafEncoding(str, Enum):
    """
    Serialization of a (key, value) pair before leaf hashing.

    FIXED_WIDTH packs the key as 8 bytes big-endian signed followed by the
    UTF-8 value. Leaf inputs are 9 to 12 bytes and can never be mistaken
    for the 64-byte input of an internal node.

    DECIMAL concatenates the decimal key text and the value, so roots match
    those computed over the plain text form. Its length grows with the key,
    so for very large keys a leaf input can have the same length as an
    internal node input.
    """

    FIXED_WIDTH = "fixed"
    DECIMAL = "decimal"


class OddNodeStrategy(str, Enum):
    """Handling of the unpaired trailing node on a level."""

    PROMOTE = "promote"
    DUPLICATE = "duplicate"


def _check_key(key: Any) -> None:
    if isinstance(key, bool) or not isinstance(key, int):
        raise TypeError(f"Leaf key must be an int, got {type(key).__name__}")


def _check_value(value: Any) -> None:
    if not isinstance(value, str):
        raise TypeError(f"Leaf value must be a str, got {type(value).__name__}")
    if len(value) != 1:
        raise ValueError(f"Leaf value must be a single character, got {value!r}")


def encode_leaf(
    key: int,
    value: str,
    encoding: LeafEncoding = LeafEncoding.FIXED_WIDTH,
) -> bytes:
    """
    Serialize a leaf's (key, value) pair.

    Args:
        key: Leaf key
        value: Single character payload
        encoding: Serialization scheme

    Returns:
        Bytes fed to the leaf hash

    Raises:
        TypeError: If key is not an int or value is not a str
        ValueError: If value is not one character or key does not fit 64 bits
    """
    _check_key(key)
    _check_value(value)

    if LeafEncoding(encoding) == LeafEncoding.DECIMAL:
        return f"{key}{value}".encode("utf-8")

    if not _KEY_MIN <= key <= _KEY_MAX:
        raise ValueError(f"Key {key} does not fit the fixed-width encoding")
    return struct.pack(">q", key) + value.encode("utf-8")


def compute_leaf_digest(
    key: int,
    value: str,
    encoding: LeafEncoding = LeafEncoding.FIXED_WIDTH,
) -> bytes:
    """Compute the SHA-256 digest of a leaf."""
    return hashlib.sha256(encode_leaf(key, value, encoding)).digest()


def compute_parent_digest(left: bytes, right: bytes) -> bytes:
    """
    Compute the digest of an internal node.

    Args:
        left: Digest of the left child
        right: Digest of the right child

    Returns:
        SHA-256 of left || right
    """
    hasher = hashlib.sha256()
    hasher.update(left)
    hasher.update(right)
    return hasher.digest()


@dataclass(frozen=True)
class HashNode:
    """
    A node of the commitment tree.

    Leaves carry key and value and no children. Internal nodes carry the
    arena indices of exactly two children and no key or value. Leaves are
    built with HashNode.leaf(), internal nodes with NodeArena.combine().

    Attributes:
        digest: SHA-256 digest of the node
        key: Leaf key (None for internal nodes)
        value: Leaf value (None for internal nodes)
        left: Arena index of the left child (None for leaves)
        right: Arena index of the right child (None for leaves)
    """

    digest: bytes
    key: int | None = None
    value: str | None = None
    left: int | None = None
    right: int | None = None

    @property
    def is_leaf(self) -> bool:
        """Check if this node is a leaf."""
        return self.left is None and self.right is None

    @property
    def hex(self) -> str:
        """Hex-encoded digest."""
        return self.digest.hex()

    @classmethod
    def leaf(
        cls,
        key: int,
        value: str,
        encoding: LeafEncoding = LeafEncoding.FIXED_WIDTH,
    ) -> "HashNode":
        """Build a leaf node for a (key, value) pair."""
        return cls(
            digest=compute_leaf_digest(key, value, encoding),
            key=key,
            value=value,
        )


class NodeArena:
    """
    Owned node table for one build pass.

    Children and parents reference each other by index into the table.
    Parent links are lookups derived while building; the owning direction
    is always root to leaves.
    """

    def __init__(self) -> None:
        self._nodes: list[HashNode] = []
        self._parents: list[int | None] = []

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, index: int) -> HashNode:
        return self._nodes[index]

    def add(self, node: HashNode) -> int:
        """Append a node and return its index."""
        self._nodes.append(node)
        self._parents.append(None)
        return len(self._nodes) - 1

    def combine(self, left: int, right: int) -> int:
        """
        Create the internal node over two existing nodes.

        Sets the parent of both children to the new node. left and right
        may be the same index when the trailing node is duplicated.

        Returns:
            Index of the new internal node
        """
        digest = compute_parent_digest(self._nodes[left].digest, self._nodes[right].digest)
        index = self.add(HashNode(digest=digest, left=left, right=right))
        self._parents[left] = index
        self._parents[right] = index
        return index

    def parent(self, index: int) -> int | None:
        """Index of the enclosing internal node, None for the root."""
        return self._parents[index]


@dataclass(frozen=True)
class DigestTrail:
    """
    Digests visited from a leaf up to the root.

    A trail has no sibling digests, so it only shows where a leaf sits in a
    tree the reader already holds. Use InclusionProof for third-party
    verification.

    Attributes:
        key: Key of the starting leaf
        digests: Leaf digest first, root digest last
        generation: Rebuild generation the trail was taken at
    """

    key: int
    digests: tuple[bytes, ...]
    generation: int

    @property
    def leaf_digest(self) -> bytes:
        return self.digests[0]

    @property
    def root_digest(self) -> bytes:
        return self.digests[-1]

    def to_hex(self) -> list[str]:
        return [digest.hex() for digest in self.digests]


@dataclass
class ProofElement:
    """
    Single element in an inclusion proof path.

    Attributes:
        hash: The sibling digest at this level (hex)
        direction: Whether the sibling is LEFT or RIGHT of the path
    """

    hash: str
    direction: ProofDirection

    def to_dict(self) -> dict[str, str]:
        """Serialize to dictionary."""
        return {"hash": self.hash, "direction": self.direction.value}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "ProofElement":
        """Deserialize from dictionary."""
        return cls(
            hash=data["hash"],
            direction=ProofDirection(data["direction"]),
        )


@dataclass
class InclusionProof:
    """
    Inclusion proof for one (key, value) pair.

    Verifiable from its own contents plus a trusted root digest.

    Attributes:
        key: Leaf key
        value: Leaf value
        leaf_hash: Digest of the leaf (hex)
        proof_path: Sibling digests with directions, leaf level first
        root_hash: Root digest the proof was generated against (hex)
        tree_size: Number of leaves in the tree
        encoding: Leaf serialization used by the tree
    """

    key: int
    value: str
    leaf_hash: str
    proof_path: list[ProofElement]
    root_hash: str
    tree_size: int
    encoding: LeafEncoding = LeafEncoding.FIXED_WIDTH

    def to_dict(self) -> dict[str, Any]:
        """Serialize proof to dictionary."""
        return {
            "key": self.key,
            "value": self.value,
            "leaf_hash": self.leaf_hash,
            "proof_path": [e.to_dict() for e in self.proof_path],
            "root_hash": self.root_hash,
            "tree_size": self.tree_size,
            "encoding": LeafEncoding(self.encoding).value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InclusionProof":
        """Deserialize proof from dictionary."""
        return cls(
            key=data["key"],
            value=data["value"],
            leaf_hash=data["leaf_hash"],
            proof_path=[ProofElement.from_dict(e) for e in data["proof_path"]],
            root_hash=data["root_hash"],
            tree_size=data["tree_size"],
            encoding=LeafEncoding(data.get("encoding", LeafEncoding.FIXED_WIDTH.value)),
        )

    def to_compact(self) -> list[str]:
        """
        Serialize the path to compact format.

        Format: ["L:hash1", "R:hash2", ...]
        """
        return [f"{e.direction.value}:{e.hash}" for e in self.proof_path]

    @classmethod
    def from_compact(
        cls,
        key: int,
        value: str,
        compact_path: list[str],
        root_hash: str,
        tree_size: int,
        encoding: LeafEncoding = LeafEncoding.FIXED_WIDTH,
    ) -> "InclusionProof":
        """Create proof from compact format, recomputing the leaf digest."""
        proof_path = []
        for item in compact_path:
            direction, hash_value = item.split(":", 1)
            proof_path.append(
                ProofElement(
                    hash=hash_value,
                    direction=ProofDirection(direction),
                )
            )
        return cls(
            key=key,
            value=value,
            leaf_hash=compute_leaf_digest(key, value, encoding).hex(),
            proof_path=proof_path,
            root_hash=root_hash,
            tree_size=tree_size,
            encoding=LeafEncoding(encoding),
        )


class MerkleCommitment:
    """
    Keyed Merkle commitment.

    The leaf mapping is the source of truth. The tree is rebuilt in full
    from all current leaves after every structural change.

    Example:
        >>> tree = MerkleCommitment()
        >>> tree.insert(1, "A")
        >>> tree.insert(2, "B")
        >>> tree.get(2)
        'B'
        >>> tree.path_to_root(1)[-1] == tree.root_digest()
        True
    """

    def __init__(
        self,
        encoding: LeafEncoding = LeafEncoding.FIXED_WIDTH,
        odd_node_strategy: OddNodeStrategy = OddNodeStrategy.PROMOTE,
    ) -> None:
        self._encoding = LeafEncoding(encoding)
        self._odd_node_strategy = OddNodeStrategy(odd_node_strategy)
        self._leaves: dict[int, HashNode] = {}
        self._arena = NodeArena()
        self._leaf_slots: dict[int, int] = {}
        self._root: int | None = None
        self._generation = 0

    @classmethod
    def from_items(
        cls,
        items: Mapping[int, str] | Iterable[tuple[int, str]],
        encoding: LeafEncoding = LeafEncoding.FIXED_WIDTH,
        odd_node_strategy: OddNodeStrategy = OddNodeStrategy.PROMOTE,
    ) -> "MerkleCommitment":
        """Construct a commitment over a batch of (key, value) pairs."""
        commitment = cls(encoding=encoding, odd_node_strategy=odd_node_strategy)
        commitment.insert_many(items)
        return commitment

    def __len__(self) -> int:
        return len(self._leaves)

    def __contains__(self, key: object) -> bool:
        return key in self._leaves

    def __repr__(self) -> str:
        root = self.root_hex[:16] if self._root is not None else None
        return f"MerkleCommitment(leaves={len(self._leaves)}, root={root})"

    @property
    def encoding(self) -> LeafEncoding:
        return self._encoding

    @property
    def odd_node_strategy(self) -> OddNodeStrategy:
        return self._odd_node_strategy

    @property
    def generation(self) -> int:
        """Number of rebuilds performed so far."""
        return self._generation

    @property
    def leaves(self) -> dict[int, HashNode]:
        """Copy of the key to leaf mapping."""
        return dict(self._leaves)

    @property
    def root(self) -> HashNode | None:
        """Get the root node, None for an empty tree."""
        if self._root is None:
            return None
        return self._arena[self._root]

    @property
    def root_hex(self) -> str | None:
        """Hex-encoded root digest, None for an empty tree."""
        digest = self.root_digest()
        return digest.hex() if digest is not None else None

    def keys(self) -> list[int]:
        """Leaf keys in tree order."""
        return sorted(self._leaves)

    def insert(self, key: int, value: str) -> None:
        """
        Insert or overwrite the leaf at key, then rebuild the whole tree.

        Each call costs a full rebuild, so n single inserts are O(n^2).
        Use insert_many() to load a batch with one rebuild.

        Raises:
            TypeError: If key is not an int or value is not a str
            ValueError: If value is not a single character
        """
        self._leaves[key] = HashNode.leaf(key, value, self._encoding)
        self.build()

    def insert_many(self, items: Mapping[int, str] | Iterable[tuple[int, str]]) -> None:
        """
        Insert or overwrite several leaves with a single rebuild.

        All pairs are validated before the tree is touched. Within the
        batch, the last value for a repeated key wins.
        """
        pairs = items.items() if isinstance(items, Mapping) else items
        staged = {key: HashNode.leaf(key, value, self._encoding) for key, value in pairs}
        if not staged:
            return
        self._leaves.update(staged)
        self.build()

    def build(self) -> None:
        """
        Rebuild the tree from all current leaves.

        Bottom-up, level-synchronous pairwise reduction over the leaves in
        ascending key order. The node left over on an odd level is promoted
        or duplicated according to the odd node strategy.
        """
        arena = NodeArena()
        slots: dict[int, int] = {}
        level: list[int] = []

        for key in sorted(self._leaves):
            index = arena.add(self._leaves[key])
            slots[key] = index
            level.append(index)

        while len(level) > 1:
            next_level = []

            for i in range(0, len(level), 2):
                if i + 1 < len(level):
                    next_level.append(arena.combine(level[i], level[i + 1]))
                elif self._odd_node_strategy == OddNodeStrategy.DUPLICATE:
                    next_level.append(arena.combine(level[i], level[i]))
                else:
                    next_level.append(level[i])

            level = next_level

        self._arena = arena
        self._leaf_slots = slots
        self._root = level[0] if level else None
        self._generation += 1

    def get(self, key: int) -> str:
        """
        Look up the value committed at key.

        Returns:
            The value, or MISSING_VALUE if key was never inserted

        Raises:
            TypeError: If key is not an int
        """
        _check_key(key)
        node = self._leaves.get(key)
        if node is None:
            return MISSING_VALUE
        return node.value

    def root_digest(self) -> bytes | None:
        """Digest of the current root, None for an empty tree."""
        if self._root is None:
            return None
        return self._arena[self._root].digest

    def depth(self, key: int) -> int | None:
        """
        Number of levels from the leaf at key up to the root, both included.

        A single-leaf tree has depth 1. None if key is absent.
        """
        path = self.path_to_root(key)
        return len(path) or None

    def path_to_root(self, key: int) -> list[bytes]:
        """
        Collect digests from the leaf at key up to the root.

        Returns:
            Leaf digest first, root digest last; empty if key is absent
        """
        _check_key(key)
        index = self._leaf_slots.get(key)
        path: list[bytes] = []

        while index is not None:
            path.append(self._arena[index].digest)
            index = self._arena.parent(index)

        return path

    def trail(self, key: int) -> DigestTrail | None:
        """Snapshot of path_to_root() tagged with the current generation."""
        path = self.path_to_root(key)
        if not path:
            return None
        return DigestTrail(key=key, digests=tuple(path), generation=self._generation)

    def is_current(self, trail: DigestTrail) -> bool:
        """Check that a trail was taken after the most recent rebuild."""
        return trail.generation == self._generation

    def get_proof(self, key: int) -> InclusionProof | None:
        """
        Generate an inclusion proof for the leaf at key.

        Returns:
            InclusionProof, or None if key is absent
        """
        _check_key(key)
        index = self._leaf_slots.get(key)
        if index is None:
            return None

        leaf = self._arena[index]
        proof_path = []
        current = index
        parent = self._arena.parent(current)

        while parent is not None:
            node = self._arena[parent]
            if node.left == current:
                proof_path.append(
                    ProofElement(
                        hash=self._arena[node.right].hex,
                        direction=ProofDirection.RIGHT,
                    )
                )
            else:
                proof_path.append(
                    ProofElement(
                        hash=self._arena[node.left].hex,
                        direction=ProofDirection.LEFT,
                    )
                )
            current = parent
            parent = self._arena.parent(current)

        return InclusionProof(
            key=key,
            value=leaf.value,
            leaf_hash=leaf.hex,
            proof_path=proof_path,
            root_hash=self.root_hex,
            tree_size=len(self._leaves),
            encoding=self._encoding,
        )

    def iter_nodes(self) -> Iterator[tuple[int, HashNode]]:
        """Pre-order walk from the root yielding (depth, node)."""
        if self._root is None:
            return
        stack = [(0, self._root)]
        while stack:
            depth, index = stack.pop()
            node = self._arena[index]
            yield depth, node
            if not node.is_leaf:
                stack.append((depth + 1, node.right))
                stack.append((depth + 1, node.left))

    def render(self) -> list[str]:
        """Human-readable dump of the whole tree, one line per node."""
        if self._root is None:
            return ["Merkle tree is empty."]

        lines = [f"Root hash: {self.root_hex}"]
        for depth, node in self.iter_nodes():
            indent = "  " * depth
            if node.is_leaf:
                lines.append(
                    f"{indent}Leaf at depth {depth}: key={node.key} value={node.value} hash={node.hex}"
                )
            else:
                lines.append(f"{indent}Node at depth {depth}: hash={node.hex}")
        return lines


def compute_root_from_proof(leaf_hash: str, proof_path: list[ProofElement]) -> str:
    """
    Compute the root digest from a leaf digest and proof path.

    Args:
        leaf_hash: Hex digest of the leaf
        proof_path: List of proof elements

    Returns:
        Computed root digest (hex)
    """
    current = bytes.fromhex(leaf_hash)

    for element in proof_path:
        sibling = bytes.fromhex(element.hash)
        if element.direction == ProofDirection.LEFT:
            current = compute_parent_digest(sibling, current)
        else:
            current = compute_parent_digest(current, sibling)

    return current.hex()


def verify_inclusion(proof: InclusionProof, expected_root: str | None = None) -> bool:
    """
    Verify an inclusion proof.

    Recomputes the leaf digest from the proof's key and value, folds the
    sibling path up to a root and compares it with expected_root, or with
    the proof's own root_hash when no root is given.

    Args:
        proof: InclusionProof to verify
        expected_root: Trusted root digest (hex)

    Returns:
        True if the proof is valid
    """
    try:
        leaf_hash = compute_leaf_digest(proof.key, proof.value, proof.encoding).hex()
        if not isinstance(proof.leaf_hash, str) or leaf_hash != proof.leaf_hash.lower():
            return False
        computed = compute_root_from_proof(proof.leaf_hash, proof.proof_path)
    except (TypeError, ValueError):
        return False

    root = expected_root if expected_root is not None else proof.root_hash
    if not isinstance(root, str):
        return False
    return computed == root.lower()
