"""Deterministic splittable RNG streams.

Streams are PCG64 (XSL-RR 128/64) bit generators seeded through numpy's
``SeedSequence`` with the seed reduced modulo 2**64. Child streams are derived
by hashing ``"<namespace>:<seed>:<key>"`` with blake2b (8-byte digest, person
``b"rngfork00"``) and reading the digest as a big-endian unsigned integer.

Bounded integers only consume raw 64-bit outputs of the bit generator, which
numpy keeps stable across releases, and map them to ``[low, high)`` with
rejection sampling: raw values ``>= 2**64 - (2**64 mod span)`` are discarded
and the rest map to ``low + raw mod span``.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib

import numpy as np


_UINT64_RANGE = 1 << 64


def _normalize_seed(seed: int) -> int:
    return int(seed) & (_UINT64_RANGE - 1)


def derive_seed(parent_seed: int, key: str, *, namespace: str = "heightforge") -> int:
    """Derive a deterministic child seed from a parent seed and label."""

    payload = f"{namespace}:{_normalize_seed(parent_seed)}:{key}".encode("utf-8")
    digest = hashlib.blake2b(payload, digest_size=8, person=b"rngfork00").digest()
    return int.from_bytes(digest, byteorder="big", signed=False)


@dataclass(frozen=True)
class RngStream:
    """Immutable RNG stream that can be forked by deterministic stage names."""

    seed: int
    namespace: str = "heightforge"

    def fork(self, key: str) -> "RngStream":
        if not key:
            raise ValueError("fork key must be non-empty")
        return RngStream(derive_seed(self.seed, key, namespace=self.namespace), self.namespace)

    def bit_generator(self) -> np.random.PCG64:
        return np.random.PCG64(np.uint64(_normalize_seed(self.seed)))

    def integers(self, low: int, high: int, count: int) -> np.ndarray:
        """Draw `count` integers uniformly from ``[low, high)``.

        Every call restarts the stream, so equal arguments give equal output.
        """

        low = int(low)
        high = int(high)
        if low >= high:
            raise ValueError(f"low must be < high (got {low} >= {high})")
        if count < 0:
            raise ValueError("count must be >= 0")
        span = high - low
        if span > _UINT64_RANGE:
            raise ValueError("range is wider than 2**64")

        limit = _UINT64_RANGE - (_UINT64_RANGE % span)
        bits = self.bit_generator()
        values: list[int] = []
        while len(values) < count:
            raw = int(bits.random_raw())
            if raw < limit:
                values.append(low + raw % span)
        return np.array(values, dtype=np.int64)
