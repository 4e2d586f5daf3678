"""
Merkle Attest - Commitment Metrics

Prometheus metrics for commitment building and attestation.

Metrics Categories:
- Merkle commitment rebuilds
- Inclusion proof verification
- Attestation proving and verification
"""

from prometheus_client import Counter, Histogram, Info

import structlog

logger = structlog.get_logger(__name__)


class CommitmentMetrics:
    """
    Centralized metrics for commitments and attestations.

    Provides visibility into:
    - Tree rebuild times and sizes
    - Inclusion proof verification results
    - Attestation outcomes and latency
    """

    def __init__(self) -> None:
        """Initialize all metrics."""
        self._init_merkle_metrics()
        self._init_attestation_metrics()
        self._init_info_metrics()

    def _init_merkle_metrics(self) -> None:
        """Initialize Merkle commitment metrics."""
        self.merkle_build_duration = Histogram(
            "merkle_attest_build_duration_seconds",
            "Time to build a Merkle commitment from its items",
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
        )

        self.merkle_tree_size = Histogram(
            "merkle_attest_tree_size",
            "Number of leaves in a built commitment",
            buckets=[1, 10, 50, 100, 500, 1000, 5000, 10000],
        )

        self.merkle_verifications = Counter(
            "merkle_attest_inclusion_verifications_total",
            "Inclusion proof verifications",
            ["result"],
        )

    def _init_attestation_metrics(self) -> None:
        """Initialize attestation metrics."""
        self.attestations_total = Counter(
            "merkle_attest_attestations_total",
            "Attestation runs by outcome",
            ["backend", "outcome"],
        )

        self.prove_duration = Histogram(
            "merkle_attest_prove_duration_seconds",
            "Time to obtain a receipt from the attestation backend",
            buckets=[0.001, 0.01, 0.1, 1.0, 10.0, 60.0, 300.0],
        )

        self.verify_duration = Histogram(
            "merkle_attest_verify_duration_seconds",
            "Time to verify a receipt",
            buckets=[0.0001, 0.001, 0.01, 0.1, 1.0, 10.0],
        )

    def _init_info_metrics(self) -> None:
        """Initialize info metrics."""
        self.service_info = Info(
            "merkle_attest_service",
            "Merkle attest service information",
        )

    # Convenience methods

    def record_merkle_build(
        self,
        duration: float,
        tree_size: int,
    ) -> None:
        """Record a commitment build."""
        self.merkle_build_duration.observe(duration)
        self.merkle_tree_size.observe(tree_size)

    def record_merkle_verification(self, valid: bool) -> None:
        """Record inclusion proof verification."""
        result = "valid" if valid else "invalid"
        self.merkle_verifications.labels(result=result).inc()

    def record_attestation(self, backend: str, outcome: str) -> None:
        """Record the outcome of an attestation run."""
        self.attestations_total.labels(backend=backend, outcome=outcome).inc()

    def set_service_info(
        self,
        version: str,
        environment: str,
        backend: str,
        program_id: str,
    ) -> None:
        """Set service info labels."""
        self.service_info.info({
            "version": version,
            "environment": environment,
            "attestation_backend": backend,
            "program_id": program_id,
        })


# Singleton instance
_commitment_metrics: CommitmentMetrics | None = None


def get_commitment_metrics() -> CommitmentMetrics:
    """Get global commitment metrics instance."""
    global _commitment_metrics
    if _commitment_metrics is None:
        _commitment_metrics = CommitmentMetrics()
    return _commitment_metrics
