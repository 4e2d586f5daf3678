"""
Merkle Attest - Attestation Boundary

The attestation step takes a private input tuple, runs a known guest
program over it and returns a receipt: a public journal plus a seal that
binds the journal to the program identity.

Backends implement two operations:
- prove(program_id, private_input) -> Receipt
- verify(receipt, program_id), raising VerificationError on failure

Any failure to prove or verify is final. Callers surface it and stop; they
never retry a rejected receipt.
"""

import hashlib
import hmac
import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import structlog

from merkle_attest.core.config import settings

logger = structlog.get_logger(__name__)

# Identity of the sample concatenation guest program
PROGRAM_DESCRIPTOR = b"merkle-attest/sample-concat/v1"
PROGRAM_ID = hashlib.sha256(PROGRAM_DESCRIPTOR).hexdigest()


class AttestationError(Exception):
    """Base exception for attestation errors."""

    pass


class ProvingError(AttestationError):
    """The backend could not produce a receipt."""

    pass


class VerificationError(AttestationError):
    """A receipt failed verification."""

    pass


def sample_concat(values: Sequence[str]) -> str:
    """
    Guest program: concatenate the sampled characters.

    Raises:
        ValueError: If the input is empty or holds anything but characters
    """
    if not values:
        raise ValueError("Private input is empty")
    for value in values:
        if not isinstance(value, str) or len(value) != 1:
            raise ValueError(f"Private input must hold single characters, got {value!r}")
    return "".join(values)


GUEST_PROGRAMS: dict[str, Callable[[Sequence[str]], str]] = {
    PROGRAM_ID: sample_concat,
}


def expected_program_id() -> str:
    """Program identity receipts are checked against."""
    return settings.PROGRAM_ID or PROGRAM_ID


@dataclass
class Receipt:
    """
    Receipt returned by an attestation backend.

    Attributes:
        journal: Public output of the guest program
        seal: Hex-encoded proof material binding journal and program
        program_id: Program identity the receipt claims
        backend: Name of the backend that produced it
        created_at: Creation time (UTC)
    """

    journal: str
    seal: str
    program_id: str
    backend: str = "dev"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "journal": self.journal,
            "seal": self.seal,
            "program_id": self.program_id,
            "backend": self.backend,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Receipt":
        """
        Deserialize from dictionary.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field has the wrong type or created_at is not ISO 8601
        """
        if not isinstance(data, dict):
            raise ValueError("Receipt must be a JSON object")

        for name in ("journal", "seal", "program_id"):
            if not isinstance(data[name], str):
                raise ValueError(f"Receipt field {name!r} must be a string")

        created_at = data.get("created_at")
        if created_at is not None and not isinstance(created_at, str):
            raise ValueError("Receipt field 'created_at' must be an ISO 8601 string")

        backend = data.get("backend", "dev")
        if not isinstance(backend, str):
            raise ValueError("Receipt field 'backend' must be a string")

        return cls(
            journal=data["journal"],
            seal=data["seal"],
            program_id=data["program_id"],
            backend=backend,
            created_at=(
                datetime.fromisoformat(created_at)
                if created_at
                else datetime.now(timezone.utc)
            ),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    def save(self, path: str | Path) -> Path:
        """Write the receipt as JSON, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
        logger.info("Receipt written", path=str(path), program_id=self.program_id[:16] + "...")
        return path

    @classmethod
    def load(cls, path: str | Path) -> "Receipt":
        """Read a receipt written by save()."""
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


class AttestationBackend(Protocol):
    """Capability interface of the attestation boundary."""

    name: str

    async def prove(self, program_id: str, private_input: Sequence[str]) -> Receipt:
        ...

    async def verify(self, receipt: Receipt, program_id: str) -> None:
        ...

    async def close(self) -> None:
        ...


class DevModeProver:
    """
    In-process development backend.

    Runs the guest program locally and seals the journal with an
    HMAC-SHA256 keyed by DEV_PROVER_SECRET over the program identity and
    journal. Verification needs the same secret. The private input is never
    part of the receipt, but nothing here is zero-knowledge: the seal only
    shows that a holder of the secret ran the named program.
    """

    name = "dev"

    def __init__(
        self,
        secret: str = settings.DEV_PROVER_SECRET,
        programs: dict[str, Callable[[Sequence[str]], str]] | None = None,
    ) -> None:
        self._secret = secret.encode("utf-8")
        self._programs = dict(GUEST_PROGRAMS if programs is None else programs)

    def _seal(self, program_id: str, journal: str) -> str:
        message = program_id.encode("utf-8") + b"\x00" + journal.encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def prove(self, program_id: str, private_input: Sequence[str]) -> Receipt:
        """
        Execute the guest program and seal its journal.

        Raises:
            ProvingError: If the program is unknown or rejects the input
        """
        program = self._programs.get(program_id)
        if program is None:
            raise ProvingError(f"Unknown program identity {program_id}")

        try:
            journal = program(private_input)
        except (TypeError, ValueError) as e:
            raise ProvingError(f"Guest program rejected input: {e}") from e

        logger.debug("Guest program executed", program_id=program_id[:16] + "...")

        return Receipt(
            journal=journal,
            seal=self._seal(program_id, journal),
            program_id=program_id,
            backend=self.name,
        )

    async def verify(self, receipt: Receipt, program_id: str) -> None:
        """
        Check a receipt against the expected program identity.

        Raises:
            VerificationError: On identity mismatch or a seal that does not match
        """
        if receipt.program_id != program_id:
            raise VerificationError(
                f"Receipt was produced for program {receipt.program_id}, expected {program_id}"
            )

        try:
            expected = self._seal(program_id, receipt.journal).encode("ascii")
            seal = receipt.seal.encode("utf-8")
        except UnicodeEncodeError as e:
            raise VerificationError(f"Receipt is not encodable as UTF-8: {e}") from e

        if not hmac.compare_digest(expected, seal):
            raise VerificationError("Receipt seal does not match journal and program identity")

    async def close(self) -> None:
        """Nothing to release."""
        return None


def create_backend(backend: str = settings.ATTESTATION_BACKEND) -> AttestationBackend:
    """
    Create the configured attestation backend.

    Args:
        backend: "dev" or "remote"

    Raises:
        ValueError: If the backend name is unknown
    """
    if backend == "dev":
        return DevModeProver()
    if backend == "remote":
        from merkle_attest.services.prover_client import RemoteProverClient

        return RemoteProverClient()
    raise ValueError(f"Unknown attestation backend {backend!r}")
