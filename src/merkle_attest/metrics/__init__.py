"""
Merkle Attest - Metrics Module

Prometheus metrics for commitment building and attestation.

Exports:
- Merkle rebuild times and tree sizes
- Inclusion proof verification counters
- Attestation outcome counters and latency
"""

from merkle_attest.metrics.commitment_metrics import (
    CommitmentMetrics,
    get_commitment_metrics,
)

__all__ = [
    "CommitmentMetrics",
    "get_commitment_metrics",
]
