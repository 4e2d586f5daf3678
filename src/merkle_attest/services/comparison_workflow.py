"""
Merkle Attest - Comparison Workflow

Orchestrates the sampled cross-dataset comparison:
1. Build one commitment per dataset
2. Sample a key and extract each dataset's value at that key
3. Hand the values to the attestation backend as private input
4. Verify the receipt against the expected program identity
5. Check the public journal against the sampled values

Any attestation failure is fatal to the run and is re-raised to the caller.
"""

import time
from dataclasses import dataclass
from typing import Any

import structlog

from merkle_attest.crypto.merkle import MISSING_VALUE
from merkle_attest.metrics import get_commitment_metrics
from merkle_attest.services.attestation import (
    AttestationBackend,
    AttestationError,
    Receipt,
    VerificationError,
    expected_program_id,
)
from merkle_attest.services.sampler import SampleComparator

logger = structlog.get_logger(__name__)


@dataclass
class ComparisonResult:
    """Result of a verified comparison run."""

    key: int
    values: tuple[str, ...]
    roots: tuple[str | None, ...]
    journal: str
    receipt: Receipt
    duration_seconds: float

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "key": self.key,
            "values": list(self.values),
            "roots": list(self.roots),
            "journal": self.journal,
            "receipt": self.receipt.to_dict(),
            "duration_seconds": round(self.duration_seconds, 4),
        }


class ComparisonWorkflow:
    """
    Runs one sampled comparison through the attestation boundary.

    Steps:
    1. Sample a key (unless one is given)
    2. Extract values from every commitment
    3. Prove with the configured backend
    4. Verify the receipt against the program identity
    5. Match the journal with the concatenated values
    """

    def __init__(
        self,
        comparator: SampleComparator,
        backend: AttestationBackend,
        program_id: str | None = None,
    ) -> None:
        """
        Initialize the workflow.

        Args:
            comparator: Source of commitments and sampled values
            backend: Attestation backend
            program_id: Expected program identity (defaults to the configured one)
        """
        self._comparator = comparator
        self._backend = backend
        self._program_id = program_id or expected_program_id()

    @property
    def program_id(self) -> str:
        return self._program_id

    async def run(self, key: int | None = None) -> ComparisonResult:
        """
        Run a comparison.

        Args:
            key: Key to compare at, sampled at random when omitted

        Returns:
            ComparisonResult with the verified receipt

        Raises:
            ValueError: If the key is outside the sampled range or has no value
            AttestationError: If proving or verification fails
        """
        metrics = get_commitment_metrics()
        job_start = time.perf_counter()

        if key is None:
            key = self._comparator.sample_key()
        elif key not in self._comparator.keys:
            raise ValueError(
                f"Key {key} is outside the sampled range "
                f"{self._comparator.keys.start}..{self._comparator.keys.stop - 1}"
            )

        sampled = self._comparator.extract(key)
        if MISSING_VALUE in sampled.values:
            raise ValueError(f"Key {key} is missing from at least one dataset")

        logger.info(
            "Starting comparison",
            key=key,
            datasets=len(sampled.values),
            backend=self._backend.name,
        )

        try:
            started = time.perf_counter()
            receipt = await self._backend.prove(self._program_id, sampled.to_private_input())
            metrics.prove_duration.observe(time.perf_counter() - started)

            started = time.perf_counter()
            await self._backend.verify(receipt, self._program_id)
            metrics.verify_duration.observe(time.perf_counter() - started)

            expected_journal = "".join(sampled.values)
            if receipt.journal != expected_journal:
                raise VerificationError(
                    f"Journal {receipt.journal!r} does not match sampled values {expected_journal!r}"
                )

        except AttestationError as e:
            metrics.record_attestation(self._backend.name, "failed")
            logger.error(
                "Attestation failed",
                key=key,
                backend=self._backend.name,
                error=str(e),
            )
            raise

        metrics.record_attestation(self._backend.name, "verified")
        duration = time.perf_counter() - job_start

        logger.info(
            "Verification passed",
            key=key,
            journal=receipt.journal,
            program_id=self._program_id[:16] + "...",
            duration_seconds=round(duration, 4),
        )

        return ComparisonResult(
            key=key,
            values=sampled.values,
            roots=sampled.roots,
            journal=receipt.journal,
            receipt=receipt,
            duration_seconds=duration,
        )
