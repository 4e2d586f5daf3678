"""
Unit tests for the keyed Merkle commitment.

Includes hand-computed tree shapes and edge case coverage.
"""

import hashlib
import random
import struct

import pytest

from merkle_attest.crypto.merkle import (
    DIGEST_SIZE,
    MISSING_VALUE,
    HashNode,
    InclusionProof,
    LeafEncoding,
    MerkleCommitment,
    NodeArena,
    OddNodeStrategy,
    ProofDirection,
    ProofElement,
    compute_leaf_digest,
    compute_parent_digest,
    compute_root_from_proof,
    encode_leaf,
    verify_inclusion,
)


def leaf(key: int, value: str) -> bytes:
    return compute_leaf_digest(key, value)


def parent(left: bytes, right: bytes) -> bytes:
    return compute_parent_digest(left, right)


class TestHashFunctions:
    """Tests for digest computation functions."""

    def test_leaf_digest_fixed_width(self) -> None:
        """Test leaf digest over the fixed-width encoding."""
        expected = hashlib.sha256(struct.pack(">q", 5) + b"A").digest()
        assert compute_leaf_digest(5, "A") == expected
        assert len(compute_leaf_digest(5, "A")) == DIGEST_SIZE

    def test_leaf_digest_decimal(self) -> None:
        """Test leaf digest over the decimal text encoding."""
        expected = hashlib.sha256(b"42Z").digest()
        assert compute_leaf_digest(42, "Z", LeafEncoding.DECIMAL) == expected

    def test_encodings_differ(self) -> None:
        """Test that the two encodings give different leaf digests."""
        assert compute_leaf_digest(1, "A") != compute_leaf_digest(1, "A", LeafEncoding.DECIMAL)

    def test_negative_key_encoding(self) -> None:
        """Test that negative keys use two's complement."""
        assert encode_leaf(-1, "A") == b"\xff" * 8 + b"A"

    def test_parent_digest(self) -> None:
        """Test internal node digest is SHA-256 of left || right."""
        left = leaf(1, "A")
        right = leaf(2, "B")
        assert parent(left, right) == hashlib.sha256(left + right).digest()

    def test_parent_digest_order_matters(self) -> None:
        """Test that swapping children changes the digest."""
        left = leaf(1, "A")
        right = leaf(2, "B")
        assert parent(left, right) != parent(right, left)

    def test_leaf_digest_deterministic(self) -> None:
        """Test that leaf digest is deterministic."""
        assert leaf(7, "G") == leaf(7, "G")

    def test_non_integer_key_rejected(self) -> None:
        """Test that non-integer keys raise TypeError."""
        with pytest.raises(TypeError):
            encode_leaf("1", "A")
        with pytest.raises(TypeError):
            encode_leaf(True, "A")
        with pytest.raises(TypeError):
            encode_leaf(1.0, "A")

    def test_non_string_value_rejected(self) -> None:
        """Test that non-string values raise TypeError."""
        with pytest.raises(TypeError):
            encode_leaf(1, 65)

    def test_value_length_rejected(self) -> None:
        """Test that values must be exactly one character."""
        with pytest.raises(ValueError):
            encode_leaf(1, "AB")
        with pytest.raises(ValueError):
            encode_leaf(1, "")

    def test_key_range_fixed_width(self) -> None:
        """Test that keys outside 64 bits only fit the decimal encoding."""
        with pytest.raises(ValueError):
            encode_leaf(2**63, "A")
        assert encode_leaf(2**63, "A", LeafEncoding.DECIMAL) == f"{2**63}A".encode()


class TestNodeArena:
    """Tests for the node arena."""

    def test_combine_sets_parents(self) -> None:
        """Test that combining two nodes links both children to the parent."""
        arena = NodeArena()
        a = arena.add(HashNode.leaf(1, "A"))
        b = arena.add(HashNode.leaf(2, "B"))
        root = arena.combine(a, b)

        assert len(arena) == 3
        assert arena.parent(a) == root
        assert arena.parent(b) == root
        assert arena.parent(root) is None
        assert arena[root].left == a
        assert arena[root].right == b
        assert not arena[root].is_leaf
        assert arena[a].is_leaf


class TestTreeConstruction:
    """Tests for tree shapes and root digests."""

    def test_empty_tree(self) -> None:
        """Test empty tree state."""
        tree = MerkleCommitment()
        assert len(tree) == 0
        assert tree.root_digest() is None
        assert tree.root_hex is None
        assert tree.root is None
        assert tree.generation == 0

    def test_single_leaf(self) -> None:
        """Test that a single leaf is the root."""
        tree = MerkleCommitment()
        tree.insert(1, "A")
        assert tree.root_digest() == leaf(1, "A")
        assert tree.depth(1) == 1

    def test_two_leaves(self) -> None:
        """Test tree with two leaves."""
        tree = MerkleCommitment.from_items({1: "A", 2: "B"})
        assert tree.root_digest() == parent(leaf(1, "A"), leaf(2, "B"))

    def test_three_leaves_promote(self) -> None:
        """Test that the unpaired node is promoted unchanged."""
        tree = MerkleCommitment.from_items({1: "A", 2: "B", 3: "C"})
        expected = parent(parent(leaf(1, "A"), leaf(2, "B")), leaf(3, "C"))
        assert tree.root_digest() == expected

    def test_three_leaves_duplicate(self) -> None:
        """Test that the unpaired node is hashed with itself."""
        tree = MerkleCommitment.from_items(
            {1: "A", 2: "B", 3: "C"},
            odd_node_strategy=OddNodeStrategy.DUPLICATE,
        )
        expected = parent(
            parent(leaf(1, "A"), leaf(2, "B")),
            parent(leaf(3, "C"), leaf(3, "C")),
        )
        assert tree.root_digest() == expected

    def test_four_leaves(self) -> None:
        """Test balanced tree with four leaves."""
        tree = MerkleCommitment.from_items({1: "A", 2: "B", 3: "C", 4: "D"})
        expected = parent(
            parent(leaf(1, "A"), leaf(2, "B")),
            parent(leaf(3, "C"), leaf(4, "D")),
        )
        assert tree.root_digest() == expected

    def test_five_leaves_promote(self) -> None:
        """Test promotion across more than one level."""
        items = {1: "A", 2: "B", 3: "C", 4: "D", 5: "E"}
        tree = MerkleCommitment.from_items(items)
        left = parent(
            parent(leaf(1, "A"), leaf(2, "B")),
            parent(leaf(3, "C"), leaf(4, "D")),
        )
        assert tree.root_digest() == parent(left, leaf(5, "E"))
        assert tree.path_to_root(5) == [leaf(5, "E"), tree.root_digest()]

    def test_strategies_agree_on_even_levels(self) -> None:
        """Test that odd node handling only matters for odd levels."""
        items = {k: "Q" for k in range(1, 5)}
        promoted = MerkleCommitment.from_items(items)
        duplicated = MerkleCommitment.from_items(
            items, odd_node_strategy=OddNodeStrategy.DUPLICATE
        )
        assert promoted.root_digest() == duplicated.root_digest()

        promoted.insert(5, "Q")
        duplicated.insert(5, "Q")
        assert promoted.root_digest() != duplicated.root_digest()

    def test_sorted_by_key(self) -> None:
        """Test that leaves are ordered by key, not insertion."""
        tree = MerkleCommitment()
        tree.insert(3, "C")
        tree.insert(1, "A")
        tree.insert(2, "B")
        expected = parent(parent(leaf(1, "A"), leaf(2, "B")), leaf(3, "C"))
        assert tree.root_digest() == expected
        assert tree.keys() == [1, 2, 3]

    def test_numeric_key_order(self) -> None:
        """Test that keys sort numerically, negatives first."""
        tree = MerkleCommitment.from_items({10: "J", -1: "Z", 2: "B"})
        expected = parent(parent(leaf(-1, "Z"), leaf(2, "B")), leaf(10, "J"))
        assert tree.root_digest() == expected

    def test_insertion_order_independent(self) -> None:
        """Test that any insertion order yields the same root."""
        items = [(k, chr(ord("A") + k % 26)) for k in range(1, 30)]
        reference = MerkleCommitment.from_items(items)

        shuffled = list(items)
        random.Random(7).shuffle(shuffled)
        tree = MerkleCommitment()
        for key, value in shuffled:
            tree.insert(key, value)

        assert tree.root_digest() == reference.root_digest()

    def test_deterministic(self) -> None:
        """Test that the same items give the same root."""
        items = {k: "M" for k in range(1, 11)}
        assert (
            MerkleCommitment.from_items(items).root_digest()
            == MerkleCommitment.from_items(items).root_digest()
        )

    def test_value_change_changes_root(self) -> None:
        """Test that the root commits to every value."""
        tree = MerkleCommitment.from_items({1: "A", 2: "B", 3: "C"})
        before = tree.root_digest()
        tree.insert(2, "X")
        assert tree.root_digest() != before

    def test_encoding_changes_root(self) -> None:
        """Test that the root depends on the leaf encoding."""
        items = {1: "A", 2: "B"}
        fixed = MerkleCommitment.from_items(items)
        decimal = MerkleCommitment.from_items(items, encoding=LeafEncoding.DECIMAL)
        assert fixed.root_digest() != decimal.root_digest()

    def test_overwrite(self) -> None:
        """Test that inserting an existing key replaces its value."""
        tree = MerkleCommitment()
        tree.insert(1, "A")
        tree.insert(1, "B")
        assert len(tree) == 1
        assert tree.get(1) == "B"
        assert tree.root_digest() == leaf(1, "B")

    def test_generation_increments(self) -> None:
        """Test that every insertion performs one rebuild."""
        tree = MerkleCommitment()
        tree.insert(1, "A")
        tree.insert(2, "B")
        assert tree.generation == 2

        tree.insert_many({3: "C", 4: "D", 5: "E"})
        assert tree.generation == 3

    def test_insert_many_empty(self) -> None:
        """Test that an empty batch does not rebuild."""
        tree = MerkleCommitment()
        tree.insert_many({})
        assert tree.generation == 0

    def test_insert_many_validates_first(self) -> None:
        """Test that a batch with a bad pair leaves the tree untouched."""
        tree = MerkleCommitment.from_items({1: "A"})
        root = tree.root_digest()

        with pytest.raises(ValueError):
            tree.insert_many({2: "B", 3: "CC"})

        assert len(tree) == 1
        assert tree.root_digest() == root
        assert tree.generation == 1

    def test_bad_insert_leaves_tree_unchanged(self) -> None:
        """Test that rejected inserts do not mutate the tree."""
        tree = MerkleCommitment.from_items({1: "A"})
        root = tree.root_digest()

        with pytest.raises(TypeError):
            tree.insert("2", "B")
        with pytest.raises(ValueError):
            tree.insert(2, "BB")

        assert tree.root_digest() == root
        assert 2 not in tree

    def test_repr(self) -> None:
        """Test repr shows leaf count."""
        tree = MerkleCommitment.from_items({1: "A"})
        assert "leaves=1" in repr(tree)


class TestLookup:
    """Tests for value lookup."""

    def test_get_present(self, small_commitment: MerkleCommitment) -> None:
        """Test lookup of inserted keys."""
        assert small_commitment.get(1) == "A"
        assert small_commitment.get(3) == "C"

    def test_get_missing_returns_sentinel(self, small_commitment: MerkleCommitment) -> None:
        """Test that missing keys return the sentinel."""
        assert small_commitment.get(99) == MISSING_VALUE
        assert MISSING_VALUE == "_"

    def test_get_on_empty_tree(self) -> None:
        """Test lookup on an empty tree."""
        assert MerkleCommitment().get(1) == "_"

    def test_get_rejects_non_integer(self, small_commitment: MerkleCommitment) -> None:
        """Test that lookups type-check the key."""
        with pytest.raises(TypeError):
            small_commitment.get("1")

    def test_contains(self, small_commitment: MerkleCommitment) -> None:
        """Test membership."""
        assert 2 in small_commitment
        assert 4 not in small_commitment


class TestPathToRoot:
    """Tests for leaf-to-root digest paths."""

    @pytest.mark.parametrize("size", range(1, 10))
    def test_path_ends(self, size: int) -> None:
        """Test path starts at the leaf, ends at the root and matches depth."""
        items = {k: chr(ord("A") + k) for k in range(size)}
        tree = MerkleCommitment.from_items(items)

        for key, value in items.items():
            path = tree.path_to_root(key)
            assert path[0] == leaf(key, value)
            assert path[-1] == tree.root_digest()
            assert len(path) == tree.depth(key)

    def test_balanced_depth(self) -> None:
        """Test depth in a power-of-two tree."""
        tree = MerkleCommitment.from_items({k: "A" for k in range(8)})
        assert all(tree.depth(k) == 4 for k in range(8))

    def test_path_absent_key(self, small_commitment: MerkleCommitment) -> None:
        """Test that absent keys have an empty path and no depth."""
        assert small_commitment.path_to_root(42) == []
        assert small_commitment.depth(42) is None
        assert small_commitment.trail(42) is None

    def test_path_on_empty_tree(self) -> None:
        """Test path on an empty tree."""
        assert MerkleCommitment().path_to_root(1) == []

    def test_path_steps_are_parents(self, small_commitment: MerkleCommitment) -> None:
        """Test that each step hashes the previous digest with its sibling."""
        path = small_commitment.path_to_root(1)
        assert path == [
            leaf(1, "A"),
            parent(leaf(1, "A"), leaf(2, "B")),
            small_commitment.root_digest(),
        ]

    def test_path_rejects_non_integer(self, small_commitment: MerkleCommitment) -> None:
        """Test that path lookups type-check the key."""
        with pytest.raises(TypeError):
            small_commitment.path_to_root(None)

    def test_trail_snapshot(self, small_commitment: MerkleCommitment) -> None:
        """Test trail contents."""
        trail = small_commitment.trail(2)
        assert trail.key == 2
        assert trail.leaf_digest == leaf(2, "B")
        assert trail.root_digest == small_commitment.root_digest()
        assert trail.to_hex()[-1] == small_commitment.root_hex
        assert small_commitment.is_current(trail)

    def test_trail_goes_stale_after_insert(self, small_commitment: MerkleCommitment) -> None:
        """Test that a trail taken before an insertion is detectably stale."""
        trail = small_commitment.trail(1)
        small_commitment.insert(4, "D")

        assert not small_commitment.is_current(trail)
        assert trail.root_digest != small_commitment.root_digest()
        assert small_commitment.path_to_root(1)[-1] == small_commitment.root_digest()


class TestInclusionProof:
    """Tests for inclusion proofs."""

    @pytest.mark.parametrize("strategy", list(OddNodeStrategy))
    @pytest.mark.parametrize("size", range(1, 13))
    def test_all_leaves_verify(self, size: int, strategy: OddNodeStrategy) -> None:
        """Test that every leaf proves inclusion under both strategies."""
        items = {k * 3: chr(ord("A") + k % 26) for k in range(size)}
        tree = MerkleCommitment.from_items(items, odd_node_strategy=strategy)

        for key, value in items.items():
            proof = tree.get_proof(key)
            assert proof is not None
            assert proof.value == value
            assert proof.tree_size == size
            assert verify_inclusion(proof)
            assert verify_inclusion(proof, expected_root=tree.root_hex)

    def test_single_leaf_proof(self) -> None:
        """Test that a single leaf proof has an empty path."""
        tree = MerkleCommitment.from_items({1: "A"})
        proof = tree.get_proof(1)
        assert proof.proof_path == []
        assert proof.leaf_hash == proof.root_hash
        assert verify_inclusion(proof)

    def test_proof_directions(self, small_commitment: MerkleCommitment) -> None:
        """Test sibling sides along a path."""
        proof = small_commitment.get_proof(2)
        assert [e.direction for e in proof.proof_path] == [
            ProofDirection.LEFT,
            ProofDirection.RIGHT,
        ]

        proof = small_commitment.get_proof(3)
        assert [e.direction for e in proof.proof_path] == [ProofDirection.LEFT]

    def test_proof_absent_key(self, small_commitment: MerkleCommitment) -> None:
        """Test that absent keys have no proof."""
        assert small_commitment.get_proof(42) is None

    def test_tampered_value_fails(self, small_commitment: MerkleCommitment) -> None:
        """Test that changing the value breaks the proof."""
        proof = small_commitment.get_proof(1)
        proof.value = "Z"
        assert not verify_inclusion(proof)

    def test_tampered_path_fails(self, small_commitment: MerkleCommitment) -> None:
        """Test that changing a sibling digest breaks the proof."""
        proof = small_commitment.get_proof(1)
        proof.proof_path[0] = ProofElement(hash="00" * 32, direction=ProofDirection.RIGHT)
        assert not verify_inclusion(proof)

    def test_swapped_direction_fails(self, small_commitment: MerkleCommitment) -> None:
        """Test that flipping a sibling side breaks the proof."""
        proof = small_commitment.get_proof(1)
        first = proof.proof_path[0]
        proof.proof_path[0] = ProofElement(hash=first.hash, direction=ProofDirection.LEFT)
        assert not verify_inclusion(proof)

    def test_wrong_root_fails(self, small_commitment: MerkleCommitment) -> None:
        """Test verification against a different root."""
        proof = small_commitment.get_proof(1)
        assert not verify_inclusion(proof, expected_root="ff" * 32)

    def test_upper_case_root(self, small_commitment: MerkleCommitment) -> None:
        """Test that hex case does not matter for the trusted root."""
        proof = small_commitment.get_proof(2)
        assert verify_inclusion(proof, expected_root=small_commitment.root_hex.upper())

        proof.root_hash = proof.root_hash.upper()
        proof.leaf_hash = proof.leaf_hash.upper()
        assert verify_inclusion(proof)

    def test_stale_proof_fails_new_root(self, small_commitment: MerkleCommitment) -> None:
        """Test that a proof from before an insertion fails against the new root."""
        proof = small_commitment.get_proof(1)
        small_commitment.insert(4, "D")
        assert not verify_inclusion(proof, expected_root=small_commitment.root_hex)

    def test_malformed_hex_fails(self, small_commitment: MerkleCommitment) -> None:
        """Test that malformed digests fail instead of raising."""
        proof = small_commitment.get_proof(1)
        proof.proof_path[0] = ProofElement(hash="not-hex", direction=ProofDirection.RIGHT)
        assert not verify_inclusion(proof)

    def test_compute_root_from_proof(self, small_commitment: MerkleCommitment) -> None:
        """Test folding a proof path up to the root."""
        proof = small_commitment.get_proof(3)
        assert compute_root_from_proof(proof.leaf_hash, proof.proof_path) == small_commitment.root_hex

    def test_dict_serialization(self, small_commitment: MerkleCommitment) -> None:
        """Test proof dictionary form."""
        proof = small_commitment.get_proof(2)
        data = proof.to_dict()

        assert data["key"] == 2
        assert data["encoding"] == "fixed"
        assert data["proof_path"][0]["direction"] == "L"

        restored = InclusionProof.from_dict(data)
        assert restored == proof
        assert verify_inclusion(restored)

    def test_compact_serialization(self, small_commitment: MerkleCommitment) -> None:
        """Test compact path form."""
        proof = small_commitment.get_proof(1)
        compact = proof.to_compact()

        assert all(item[:2] in ("L:", "R:") for item in compact)

        restored = InclusionProof.from_compact(
            key=1,
            value="A",
            compact_path=compact,
            root_hash=proof.root_hash,
            tree_size=proof.tree_size,
        )
        assert restored.leaf_hash == proof.leaf_hash
        assert verify_inclusion(restored)

    def test_decimal_encoding_proof(self) -> None:
        """Test proofs carry their encoding."""
        tree = MerkleCommitment.from_items({1: "A", 2: "B"}, encoding=LeafEncoding.DECIMAL)
        proof = tree.get_proof(2)
        assert proof.encoding == LeafEncoding.DECIMAL
        assert verify_inclusion(proof)

        proof.encoding = LeafEncoding.FIXED_WIDTH
        assert not verify_inclusion(proof)


class TestRender:
    """Tests for the human-readable dump."""

    def test_render_empty(self) -> None:
        """Test dump of an empty tree."""
        assert MerkleCommitment().render() == ["Merkle tree is empty."]

    def test_render_lists_every_node(self, small_commitment: MerkleCommitment) -> None:
        """Test dump has the root line plus one line per node."""
        lines = small_commitment.render()
        assert lines[0] == f"Root hash: {small_commitment.root_hex}"
        # 3 leaves + 2 internal nodes
        assert len(lines) == 6
        assert any("key=1 value=A" in line for line in lines)

    def test_iter_nodes_preorder(self, small_commitment: MerkleCommitment) -> None:
        """Test pre-order walk starts at the root."""
        nodes = list(small_commitment.iter_nodes())
        assert nodes[0] == (0, small_commitment.root)
        assert [n.key for _, n in nodes if n.is_leaf] == [1, 2, 3]


class TestLetterDataset:
    """End-to-end checks over the 1..100 letter dataset."""

    def test_lookup(self, letter_commitment: MerkleCommitment) -> None:
        """Test values and the sentinel."""
        assert len(letter_commitment) == 100
        assert letter_commitment.get(1) == "A"
        assert letter_commitment.get(26) == "Z"
        assert letter_commitment.get(27) == "A"
        assert letter_commitment.get(50) == "X"
        assert letter_commitment.get(101) == "_"

    def test_path_for_key_50(self, letter_commitment: MerkleCommitment) -> None:
        """Test path length equals depth and ends at the root."""
        path = letter_commitment.path_to_root(50)
        assert len(path) == letter_commitment.depth(50) == 8
        assert path[-1] == letter_commitment.root_digest()

    def test_promoted_leaf_is_shallower(self, letter_commitment: MerkleCommitment) -> None:
        """Test that the repeatedly promoted last leaf has a short path."""
        assert letter_commitment.depth(100) == 5

    def test_batch_matches_single_inserts(self, letter_commitment: MerkleCommitment) -> None:
        """Test that one batch rebuild equals one hundred single rebuilds."""
        batch = MerkleCommitment.from_items(
            {k: letter_commitment.get(k) for k in range(1, 101)}
        )
        assert batch.root_digest() == letter_commitment.root_digest()
        assert letter_commitment.generation == 100
        assert batch.generation == 1

    @pytest.mark.parametrize(
        "encoding,root",
        [
            (
                LeafEncoding.FIXED_WIDTH,
                "3f313e643334f3060c781b5b53a5fa6a04040ea39c28ac42e3789228839e28cb",
            ),
            (
                LeafEncoding.DECIMAL,
                "11ada1ac1881205df5207a285008deb65603959c4d9eb2a207497cb8fff5f033",
            ),
        ],
    )
    def test_known_root(self, encoding: LeafEncoding, root: str) -> None:
        """Test the published root of the letter dataset."""
        commitment = MerkleCommitment.from_items(
            {k: chr(ord("A") + (k - 1) % 26) for k in range(1, 101)},
            encoding=encoding,
        )
        assert commitment.root_hex == root
