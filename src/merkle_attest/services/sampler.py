"""
Merkle Attest - Sampler/Comparator

Builds independent commitments over related keyed datasets, samples a key
and extracts the value every dataset commits to at that key. The extracted
tuple becomes the private input of the attestation step.

Datasets are letter sequences: with offset d, key k holds letter_for(k + d).
"""

import random
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from merkle_attest.core.config import settings
from merkle_attest.crypto.merkle import LeafEncoding, MerkleCommitment, OddNodeStrategy
from merkle_attest.metrics import get_commitment_metrics

logger = structlog.get_logger(__name__)

ALPHABET_SIZE = 26


def letter_for(n: int) -> str:
    """Map 1 to 'A', 26 to 'Z', 27 back to 'A'."""
    return chr(ord("A") + (n - 1) % ALPHABET_SIZE)


def build_offset_commitment(
    keys: Sequence[int],
    offset: int = 0,
    encoding: LeafEncoding = LeafEncoding.FIXED_WIDTH,
    odd_node_strategy: OddNodeStrategy = OddNodeStrategy.PROMOTE,
) -> MerkleCommitment:
    """
    Build a commitment where key k holds letter_for(k + offset).

    Leaves are inserted one by one, each insertion rebuilding the tree.
    """
    commitment = MerkleCommitment(encoding=encoding, odd_node_strategy=odd_node_strategy)
    for key in keys:
        commitment.insert(key, letter_for(key + offset))
    return commitment


@dataclass(frozen=True)
class SampledValues:
    """
    Values read from every commitment at one sampled key.

    Attributes:
        key: The sampled key
        values: One value per commitment, in offset order
        roots: Hex root digest of each commitment at sampling time
    """

    key: int
    values: tuple[str, ...]
    roots: tuple[str | None, ...]

    def to_private_input(self) -> list[str]:
        """Input tuple handed to the attestation backend."""
        return list(self.values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "key": self.key,
            "values": list(self.values),
            "roots": list(self.roots),
        }


class SampleComparator:
    """
    Builds one commitment per offset over a shared key range and samples
    values across them.

    Commitments are built lazily on first use and are independent of each
    other.
    """

    def __init__(
        self,
        key_start: int = settings.SAMPLE_KEY_START,
        key_end: int = settings.SAMPLE_KEY_END,
        offsets: Sequence[int] | None = None,
        seed: int | None = settings.SAMPLE_SEED,
        encoding: LeafEncoding = LeafEncoding(settings.LEAF_ENCODING),
        odd_node_strategy: OddNodeStrategy = OddNodeStrategy(settings.ODD_NODE_STRATEGY),
    ) -> None:
        """
        Initialize the comparator.

        Args:
            key_start: First key of the shared range (inclusive)
            key_end: Last key of the shared range (inclusive)
            offsets: Letter offset of each dataset
            seed: Seed for key sampling, None for a random seed
            encoding: Leaf serialization for all commitments
            odd_node_strategy: Odd node handling for all commitments

        Raises:
            ValueError: If the key range is empty or no offsets are given
        """
        if key_end < key_start:
            raise ValueError(f"Empty key range {key_start}..{key_end}")

        self._keys = range(key_start, key_end + 1)
        self._offsets = tuple(settings.SAMPLE_OFFSETS if offsets is None else offsets)
        if not self._offsets:
            raise ValueError("At least one dataset offset is required")

        self._rng = random.Random(seed)
        self._encoding = LeafEncoding(encoding)
        self._odd_node_strategy = OddNodeStrategy(odd_node_strategy)
        self._commitments: list[MerkleCommitment] | None = None

    @property
    def keys(self) -> range:
        return self._keys

    @property
    def offsets(self) -> tuple[int, ...]:
        return self._offsets

    @property
    def commitments(self) -> list[MerkleCommitment]:
        """Commitments in offset order, built on first access."""
        if self._commitments is None:
            self._commitments = self.build()
        return self._commitments

    def build(self) -> list[MerkleCommitment]:
        """Build a fresh commitment for every offset."""
        metrics = get_commitment_metrics()
        commitments = []

        for offset in self._offsets:
            started = time.perf_counter()
            commitment = build_offset_commitment(
                self._keys,
                offset=offset,
                encoding=self._encoding,
                odd_node_strategy=self._odd_node_strategy,
            )
            metrics.record_merkle_build(time.perf_counter() - started, len(commitment))

            logger.debug(
                "Built commitment",
                offset=offset,
                leaf_count=len(commitment),
                root=commitment.root_hex[:16] + "...",
            )
            commitments.append(commitment)

        self._commitments = commitments
        return commitments

    def sample_key(self) -> int:
        """Draw a key uniformly from the shared range."""
        return self._rng.choice(self._keys)

    def extract(self, key: int) -> SampledValues:
        """
        Read the value at key from every commitment.

        Keys outside the range yield the missing-value sentinel.
        """
        commitments = self.commitments
        sampled = SampledValues(
            key=key,
            values=tuple(c.get(key) for c in commitments),
            roots=tuple(c.root_hex for c in commitments),
        )

        logger.info(
            "Sampled values",
            key=key,
            values="".join(sampled.values),
        )
        return sampled
