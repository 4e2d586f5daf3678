"""
Merkle Attest

Keyed Merkle commitments with attested sampled comparison.
"""

__version__ = "0.1.0"
