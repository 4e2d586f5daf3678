"""
Merkle Attest API v1

Endpoints:
- POST /commitments - Build commitment
- GET /commitments/{id}/... - Lookups, trails and proofs
- POST /commitments/verify - Verify inclusion proof
- POST /attestations - Run attested comparison
- POST /attestations/verify - Verify receipt
"""

from fastapi import APIRouter

from merkle_attest.api.v1.endpoints import attestations, commitments

router = APIRouter()
router.include_router(commitments.router, prefix="/commitments", tags=["Commitments"])
router.include_router(attestations.router, prefix="/attestations", tags=["Attestations"])
