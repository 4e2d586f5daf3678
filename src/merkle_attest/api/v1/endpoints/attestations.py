"""
Merkle Attest API - Attestation Endpoints

- POST /attestations: Run a sampled comparison through the attestation backend
- POST /attestations/verify: Verify a stored receipt against the program identity
"""

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from merkle_attest.services.attestation import (
    AttestationError,
    Receipt,
    VerificationError,
    expected_program_id,
)
from merkle_attest.services.comparison_workflow import ComparisonWorkflow

logger = structlog.get_logger(__name__)
router = APIRouter()


class AttestationRequest(BaseModel):
    """Request to run a comparison."""

    key: int | None = Field(
        default=None,
        description="Key to compare at (sampled at random when omitted)",
    )


class AttestationResponse(BaseModel):
    """Verified comparison result."""

    key: int
    values: list[str]
    roots: list[str | None]
    journal: str
    program_id: str
    receipt: dict[str, Any]
    duration_seconds: float


class ReceiptVerifyRequest(BaseModel):
    """Request to verify a receipt."""

    receipt: dict[str, Any]
    program_id: str | None = Field(
        default=None,
        description="Expected program identity (defaults to the service's)",
    )


class ReceiptVerifyResponse(BaseModel):
    """Receipt verification result."""

    verified: bool
    journal: str | None = None
    message: str


@router.post(
    "",
    response_model=AttestationResponse,
    summary="Run attested comparison",
    responses={
        422: {"description": "Key outside the sampled range"},
        502: {"description": "Proving or verification failed"},
    },
)
async def create_attestation(
    request: AttestationRequest,
    req: Request,
) -> AttestationResponse:
    """Sample values across the datasets, prove and verify."""
    comparator = getattr(req.app.state, "comparator", None)
    backend = getattr(req.app.state, "attestation_backend", None)
    if comparator is None or backend is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Attestation backend not initialized",
        )

    workflow = ComparisonWorkflow(comparator, backend)

    try:
        result = await workflow.run(key=request.key)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except AttestationError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Attestation failed: {e}",
        )

    return AttestationResponse(
        key=result.key,
        values=list(result.values),
        roots=list(result.roots),
        journal=result.journal,
        program_id=workflow.program_id,
        receipt=result.receipt.to_dict(),
        duration_seconds=round(result.duration_seconds, 4),
    )


@router.post(
    "/verify",
    response_model=ReceiptVerifyResponse,
    summary="Verify receipt",
)
async def verify_receipt(
    request: ReceiptVerifyRequest,
    req: Request,
) -> ReceiptVerifyResponse:
    """Verify a receipt produced by this service's backend."""
    backend = getattr(req.app.state, "attestation_backend", None)
    if backend is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Attestation backend not initialized",
        )

    try:
        receipt = Receipt.from_dict(request.receipt)
    except (KeyError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Malformed receipt: {e}",
        )

    program_id = request.program_id or expected_program_id()

    try:
        await backend.verify(receipt, program_id)
    except VerificationError as e:
        logger.warning("Receipt rejected", error=str(e))
        return ReceiptVerifyResponse(verified=False, message=str(e))
    except AttestationError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Verification unavailable: {e}",
        )

    return ReceiptVerifyResponse(
        verified=True,
        journal=receipt.journal,
        message="Receipt verified",
    )
