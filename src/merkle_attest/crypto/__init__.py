"""
Merkle Attest - Cryptographic Utilities

Provides the keyed Merkle commitment, inclusion proofs and verification.
"""

from merkle_attest.crypto.merkle import (
    MISSING_VALUE,
    DigestTrail,
    HashNode,
    InclusionProof,
    LeafEncoding,
    MerkleCommitment,
    OddNodeStrategy,
    compute_leaf_digest,
    compute_parent_digest,
    verify_inclusion,
)

__all__ = [
    "MISSING_VALUE",
    "DigestTrail",
    "HashNode",
    "InclusionProof",
    "LeafEncoding",
    "MerkleCommitment",
    "OddNodeStrategy",
    "compute_leaf_digest",
    "compute_parent_digest",
    "verify_inclusion",
]
