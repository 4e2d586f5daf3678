"""
Merkle Attest - Remote Prover Client

Client for an external proving service that executes the guest program and
returns receipts. Provides connection management, proving and receipt
verification over HTTP.

Only transport failures while reaching the service are retried. Any answer
from the service, including a rejection, is final.
"""

from collections.abc import Sequence
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from merkle_attest.core.config import settings
from merkle_attest.services.attestation import (
    AttestationError,
    ProvingError,
    Receipt,
    VerificationError,
)

logger = structlog.get_logger(__name__)


class ProverClientError(AttestationError):
    """Failed to reach or talk to the proving service."""

    pass


class RemoteProverClient:
    """
    Attestation backend backed by a remote proving service.

    Endpoints:
    - POST /v1/prove  {"program_id", "input"} -> {"journal", "seal", "program_id"}
    - POST /v1/verify {"receipt", "program_id"} -> {"verified", "reason"?}
    """

    name = "remote"

    def __init__(
        self,
        base_url: str = settings.PROVER_URL,
        api_key: str | None = settings.PROVER_API_KEY,
        timeout: float = settings.PROVER_TIMEOUT,
        retry_count: int = settings.PROVER_RETRY_COUNT,
        retry_delay: float = settings.PROVER_RETRY_DELAY,
        retry_max_delay: float = settings.PROVER_RETRY_MAX_DELAY,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Proving service base URL
            api_key: Optional bearer token
            timeout: Request timeout in seconds, proving included
            retry_count: Attempts per request on transport errors
            retry_delay: Backoff multiplier in seconds
            retry_max_delay: Backoff ceiling in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._retry_count = retry_count
        self._retry_delay = retry_delay
        self._retry_max_delay = retry_max_delay
        self._client: httpx.AsyncClient | None = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is open."""
        return self._client is not None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def connect(self) -> None:
        """Open the HTTP client."""
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=headers,
        )
        logger.info("Connected to proving service", url=self._base_url)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("Disconnected from proving service")

    async def prove(self, program_id: str, private_input: Sequence[str]) -> Receipt:
        """
        Ask the service to run the program over the private input.

        Raises:
            ProvingError: If the service rejects the request or times out
            ProverClientError: If the service cannot be reached
        """
        payload = {"program_id": program_id, "input": list(private_input)}

        try:
            response = await self._post("/v1/prove", payload)
        except httpx.TimeoutException as e:
            raise ProvingError(f"Proving timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "Proving request rejected",
                status_code=e.response.status_code,
                response=e.response.text[:200],
            )
            raise ProvingError(f"Proving failed: {e.response.status_code}") from e

        data = self._decode(response, ProvingError)
        try:
            journal, seal = data["journal"], data["seal"]
            receipt_program = data.get("program_id", program_id)
        except KeyError as e:
            raise ProvingError(f"Malformed receipt from proving service, missing {e}") from e
        if not all(isinstance(v, str) for v in (journal, seal, receipt_program)):
            raise ProvingError("Malformed receipt from proving service, non-string field")

        return Receipt(
            journal=journal,
            seal=seal,
            program_id=receipt_program,
            backend=self.name,
        )

    async def verify(self, receipt: Receipt, program_id: str) -> None:
        """
        Ask the service to verify a receipt against the program identity.

        Raises:
            VerificationError: If the receipt does not verify
            ProverClientError: If the service fails, times out or cannot be reached
        """
        if receipt.program_id != program_id:
            raise VerificationError(
                f"Receipt was produced for program {receipt.program_id}, expected {program_id}"
            )

        payload = {"receipt": receipt.to_dict(), "program_id": program_id}

        try:
            response = await self._post("/v1/verify", payload)
        except httpx.TimeoutException as e:
            raise ProverClientError(f"Verification timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code >= 500:
                logger.error(
                    "Verification service error",
                    status_code=status_code,
                    response=e.response.text[:200],
                )
                raise ProverClientError(f"Verification service error: {status_code}") from e
            raise VerificationError(f"Verification request rejected: {status_code}") from e

        data = self._decode(response, VerificationError)

        if data.get("verified") is not True:
            raise VerificationError(
                str(data.get("reason") or "Receipt rejected by proving service")
            )

    @staticmethod
    def _decode(response: httpx.Response, error: type[AttestationError]) -> dict[str, Any]:
        """Decode a JSON object body, raising error when it is not one."""
        try:
            data = response.json()
        except ValueError as e:
            raise error(f"Proving service returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise error(
                f"Proving service returned {type(data).__name__}, expected an object"
            )
        return data

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        """POST with retry on transport errors only."""
        if not self.is_connected:
            await self.connect()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_count),
                wait=wait_exponential(
                    multiplier=self._retry_delay,
                    max=self._retry_max_delay,
                ),
                retry=(
                    retry_if_exception_type(httpx.TransportError)
                    & retry_if_not_exception_type(httpx.TimeoutException)
                ),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.post(path, json=payload)
                    response.raise_for_status()
                    return response
        except RetryError as e:
            raise ProverClientError(f"Proving service unreachable: {e}") from e
        except httpx.TimeoutException:
            raise
        except httpx.TransportError as e:
            raise ProverClientError(f"Proving service unreachable: {e}") from e
