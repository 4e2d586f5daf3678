"""
Merkle Attest - Services Package

Provides dataset sampling, the attestation boundary and the comparison
workflow.

Note: Imports are performed lazily to avoid circular import issues.
Use direct imports from submodules when needed:
    from merkle_attest.services.sampler import SampleComparator
    from merkle_attest.services.attestation import DevModeProver
    etc.
"""

import importlib

_EXPORTS = {
    "SampleComparator": "sampler",
    "SampledValues": "sampler",
    "AttestationError": "attestation",
    "ProvingError": "attestation",
    "VerificationError": "attestation",
    "Receipt": "attestation",
    "DevModeProver": "attestation",
    "RemoteProverClient": "prover_client",
    "ComparisonWorkflow": "comparison_workflow",
    "ComparisonResult": "comparison_workflow",
}

__all__ = list(_EXPORTS)


def __getattr__(name: str):
    module = _EXPORTS.get(name)
    if module is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(importlib.import_module(f"{__name__}.{module}"), name)
