"""
Pytest configuration and shared fixtures for Merkle Attest tests.
"""

from unittest.mock import AsyncMock

import pytest

from merkle_attest.crypto.merkle import LeafEncoding, MerkleCommitment, OddNodeStrategy
from merkle_attest.services.attestation import DevModeProver
from merkle_attest.services.prover_client import RemoteProverClient
from merkle_attest.services.sampler import SampleComparator, build_offset_commitment


@pytest.fixture
def small_commitment() -> MerkleCommitment:
    """Create a three-leaf commitment."""
    return MerkleCommitment.from_items({1: "A", 2: "B", 3: "C"})


@pytest.fixture
def letter_commitment() -> MerkleCommitment:
    """Create the 1..100 letter dataset commitment."""
    return build_offset_commitment(range(1, 101))


@pytest.fixture
def comparator() -> SampleComparator:
    """Create a seeded comparator over three offset datasets."""
    return SampleComparator(
        key_start=1,
        key_end=100,
        offsets=[0, 1, 2],
        seed=42,
        encoding=LeafEncoding.FIXED_WIDTH,
        odd_node_strategy=OddNodeStrategy.PROMOTE,
    )


@pytest.fixture
def dev_prover() -> DevModeProver:
    """Create a development prover with a fixed secret."""
    return DevModeProver(secret="test-secret")


@pytest.fixture
def mock_httpx_client() -> AsyncMock:
    """Create a mock httpx client."""
    client = AsyncMock()
    client.post = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def remote_client() -> RemoteProverClient:
    """Create a remote prover client with no backoff delay."""
    return RemoteProverClient(
        base_url="http://prover.test/",
        api_key="prover-key",
        timeout=5.0,
        retry_count=3,
        retry_delay=0,
        retry_max_delay=0,
    )
