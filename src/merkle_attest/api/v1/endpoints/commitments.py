"""
Merkle Attest API - Commitment Endpoints

- POST /commitments: Build a commitment over a keyed dataset
- GET /commitments: List commitments held by this process
- GET /commitments/{id}: Commitment summary
- POST /commitments/{id}/leaves: Insert or overwrite one leaf
- GET /commitments/{id}/values/{key}: Value lookup (sentinel when missing)
- GET /commitments/{id}/trail/{key}: Leaf-to-root digest trail
- GET /commitments/{id}/proofs/{key}: Inclusion proof
- POST /commitments/verify: Verify an inclusion proof against a root

Commitments live in memory for the lifetime of the process.
"""

import time
from uuid import UUID, uuid4

import structlog
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from merkle_attest.core.config import settings
from merkle_attest.crypto.merkle import (
    DIGEST_SIZE,
    InclusionProof,
    LeafEncoding,
    MerkleCommitment,
    OddNodeStrategy,
    verify_inclusion,
)
from merkle_attest.metrics import get_commitment_metrics

logger = structlog.get_logger(__name__)
router = APIRouter()


# Request/Response Models
class CommitmentCreateRequest(BaseModel):
    """Request to build a commitment."""

    items: dict[int, str] = Field(
        ...,
        description="Key to single-character value mapping",
    )
    encoding: LeafEncoding = Field(
        default=LeafEncoding(settings.LEAF_ENCODING),
        description="Leaf serialization (fixed or decimal)",
    )
    odd_node_strategy: OddNodeStrategy = Field(
        default=OddNodeStrategy(settings.ODD_NODE_STRATEGY),
        description="Handling of an unpaired node (promote or duplicate)",
    )


class LeafInsertRequest(BaseModel):
    """Request to insert or overwrite one leaf."""

    key: int
    value: str = Field(..., min_length=1, max_length=1)


class CommitmentResponse(BaseModel):
    """Commitment summary."""

    id: UUID
    root_hash: str | None
    leaf_count: int
    generation: int
    encoding: str
    odd_node_strategy: str


class ValueResponse(BaseModel):
    """Value lookup result."""

    key: int
    value: str
    present: bool


class TrailResponse(BaseModel):
    """Digest trail from leaf to root."""

    key: int
    digests: list[str]
    root_hash: str | None
    generation: int


class ProofResponse(BaseModel):
    """Inclusion proof for a leaf."""

    key: int
    value: str
    leaf_hash: str
    root_hash: str
    tree_size: int
    encoding: str
    merkle_proof: list[str]


class VerifyRequest(BaseModel):
    """Request to verify an inclusion proof."""

    key: int
    value: str = Field(..., min_length=1, max_length=1)
    root_hash: str = Field(..., min_length=2 * DIGEST_SIZE, max_length=2 * DIGEST_SIZE)
    merkle_proof: list[str] = Field(
        default_factory=list,
        description="Proof path (L:hash or R:hash format)",
    )
    encoding: LeafEncoding = LeafEncoding.FIXED_WIDTH


class VerifyResponse(BaseModel):
    """Verification result."""

    verified: bool
    key: int
    root_hash: str
    message: str


def _registry(req: Request) -> dict[UUID, MerkleCommitment]:
    registry = getattr(req.app.state, "commitments", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Commitment registry not initialized",
        )
    return registry


def _get_commitment(req: Request, commitment_id: UUID) -> MerkleCommitment:
    commitment = _registry(req).get(commitment_id)
    if commitment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Commitment {commitment_id} not found",
        )
    return commitment


def _to_response(commitment_id: UUID, commitment: MerkleCommitment) -> CommitmentResponse:
    return CommitmentResponse(
        id=commitment_id,
        root_hash=commitment.root_hex,
        leaf_count=len(commitment),
        generation=commitment.generation,
        encoding=commitment.encoding.value,
        odd_node_strategy=commitment.odd_node_strategy.value,
    )


# Endpoints
@router.post(
    "",
    response_model=CommitmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Build commitment",
)
async def create_commitment(
    request: CommitmentCreateRequest,
    req: Request,
) -> CommitmentResponse:
    """Build a commitment over the submitted items with a single rebuild."""
    started = time.perf_counter()

    try:
        commitment = MerkleCommitment.from_items(
            request.items,
            encoding=request.encoding,
            odd_node_strategy=request.odd_node_strategy,
        )
    except (TypeError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    get_commitment_metrics().record_merkle_build(time.perf_counter() - started, len(commitment))

    commitment_id = uuid4()
    _registry(req)[commitment_id] = commitment

    logger.info(
        "Commitment created",
        commitment_id=str(commitment_id),
        leaf_count=len(commitment),
        root=(commitment.root_hex or "")[:16] + "...",
    )
    return _to_response(commitment_id, commitment)


@router.get(
    "",
    response_model=list[CommitmentResponse],
    summary="List commitments",
)
async def list_commitments(req: Request) -> list[CommitmentResponse]:
    """List all commitments held in memory."""
    return [_to_response(cid, c) for cid, c in _registry(req).items()]


@router.post(
    "/verify",
    response_model=VerifyResponse,
    summary="Verify inclusion proof",
)
async def verify_proof(request: VerifyRequest) -> VerifyResponse:
    """Verify a compact inclusion proof against a caller-supplied root."""
    try:
        proof = InclusionProof.from_compact(
            key=request.key,
            value=request.value,
            compact_path=request.merkle_proof,
            root_hash=request.root_hash,
            tree_size=0,
            encoding=request.encoding,
        )
        verified = verify_inclusion(proof, expected_root=request.root_hash)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Malformed proof: {e}",
        )

    get_commitment_metrics().record_merkle_verification(verified)
    logger.info("Inclusion proof checked", key=request.key, verified=verified)

    return VerifyResponse(
        verified=verified,
        key=request.key,
        root_hash=request.root_hash,
        message="Proof valid" if verified else "Proof does not lead to the given root",
    )


@router.get(
    "/{commitment_id}",
    response_model=CommitmentResponse,
    summary="Get commitment",
)
async def get_commitment(commitment_id: UUID, req: Request) -> CommitmentResponse:
    """Commitment summary."""
    return _to_response(commitment_id, _get_commitment(req, commitment_id))


@router.post(
    "/{commitment_id}/leaves",
    response_model=CommitmentResponse,
    summary="Insert leaf",
)
async def insert_leaf(
    commitment_id: UUID,
    request: LeafInsertRequest,
    req: Request,
) -> CommitmentResponse:
    """Insert or overwrite one leaf and rebuild the tree."""
    commitment = _get_commitment(req, commitment_id)
    try:
        commitment.insert(request.key, request.value)
    except (TypeError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    logger.info(
        "Leaf inserted",
        commitment_id=str(commitment_id),
        key=request.key,
        generation=commitment.generation,
    )
    return _to_response(commitment_id, commitment)


@router.get(
    "/{commitment_id}/values/{key}",
    response_model=ValueResponse,
    summary="Look up value",
)
async def get_value(commitment_id: UUID, key: int, req: Request) -> ValueResponse:
    """Value at key, or the missing-value sentinel."""
    commitment = _get_commitment(req, commitment_id)
    value = commitment.get(key)
    return ValueResponse(key=key, value=value, present=key in commitment)


@router.get(
    "/{commitment_id}/trail/{key}",
    response_model=TrailResponse,
    summary="Get digest trail",
)
async def get_trail(commitment_id: UUID, key: int, req: Request) -> TrailResponse:
    """Digest trail from the leaf at key to the root; empty when absent."""
    commitment = _get_commitment(req, commitment_id)
    return TrailResponse(
        key=key,
        digests=[d.hex() for d in commitment.path_to_root(key)],
        root_hash=commitment.root_hex,
        generation=commitment.generation,
    )


@router.get(
    "/{commitment_id}/proofs/{key}",
    response_model=ProofResponse,
    summary="Get inclusion proof",
)
async def get_proof(commitment_id: UUID, key: int, req: Request) -> ProofResponse:
    """Inclusion proof for the leaf at key."""
    commitment = _get_commitment(req, commitment_id)
    proof = commitment.get_proof(key)
    if proof is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No leaf at key {key}",
        )

    return ProofResponse(
        key=proof.key,
        value=proof.value,
        leaf_hash=proof.leaf_hash,
        root_hash=proof.root_hash,
        tree_size=proof.tree_size,
        encoding=proof.encoding.value,
        merkle_proof=proof.to_compact(),
    )

