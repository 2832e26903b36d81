"""Shamir secret sharing over the prime field q = 2^256 - 2^32 - 977.

The ceremony splits the ElGamal private scalar with `generate_shares` and
rebuilds it with `reconstruct_secret`. All arithmetic is mod q; nothing in
this module touches the ElGamal group prime.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from . import bigfield
from .errors import (
    InsufficientSharesError,
    InvalidThresholdError,
    ShareVerificationError,
)

logger = logging.getLogger(__name__)

SHAMIR_PRIME = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
SECRET_BYTES = 32


@dataclass(frozen=True)
class Share:
    """One evaluation of the sharing polynomial

    Attributes
    - index: evaluation point x >= 1
    - value: f(index) mod q
    """

    index: int
    value: int


@dataclass(frozen=True)
class ShareSet:
    """Result of `generate_shares`

    Attributes
    - shares: n shares, indices 1..n in order
    - coefficients: [a0, a1, ..., a(t-1)] where a0 is the secret
    - prime: the field modulus
    """

    shares: Tuple[Share, ...]
    coefficients: Tuple[int, ...]
    prime: int

    @property
    def threshold(self) -> int:
        return len(self.coefficients)


def validate_threshold(threshold: int, total_shares: int) -> None:
    if threshold < 2:
        raise InvalidThresholdError(f"threshold must be at least 2, got {threshold}")
    if threshold > total_shares:
        raise InvalidThresholdError(
            f"threshold {threshold} exceeds total shares {total_shares}"
        )


def evaluate_polynomial(coefficients: Sequence[int], x: int, prime: int) -> int:
    """Horner evaluation of sum(a_i * x^i) mod prime."""
    acc = 0
    for coeff in reversed(coefficients):
        acc = (acc * x + coeff) % prime
    return acc


def generate_shares(
    secret: bytes,
    threshold: int,
    total_shares: int,
    prime: int = SHAMIR_PRIME,
) -> ShareSet:
    """Split `secret` into `total_shares` shares, any `threshold` of which rebuild it.

    Args
    - secret: big-endian bytes, interpreted as an integer that must be < prime
    - threshold: t, with 2 <= t <= n
    - total_shares: n

    Returns: a ShareSet holding the shares and the polynomial coefficients.
    """
    validate_threshold(threshold, total_shares)
    s = bigfield.bytes_to_int(secret)
    if s >= prime:
        raise ValueError("secret does not fit in the share field")

    coefficients = [s] + [
        bigfield.random_field_element(0, prime - 1) for _ in range(threshold - 1)
    ]
    shares = tuple(
        Share(index=x, value=evaluate_polynomial(coefficients, x, prime))
        for x in range(1, total_shares + 1)
    )
    logger.debug("generated %d shares with threshold %d", total_shares, threshold)
    return ShareSet(shares=shares, coefficients=tuple(coefficients), prime=prime)


def verify_share(share: Share, coefficients: Sequence[int], prime: int = SHAMIR_PRIME) -> bool:
    """Re-evaluate the polynomial at share.index and compare.

    Only as trustworthy as the coefficient list the caller supplies.
    """
    if share.index < 1:
        return False
    return evaluate_polynomial(coefficients, share.index, prime) == share.value % prime


def verification_hash(share: Share) -> str:
    """SHA-256 hex over "<index>:0x<64 hex digits of value>"."""
    payload = f"{share.index}:0x{share.value:064x}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _distinct(shares: Iterable[Share]) -> List[Share]:
    seen: Dict[int, Share] = {}
    for share in shares:
        if share.index < 1:
            raise ShareVerificationError(f"share index must be >= 1, got {share.index}")
        prev = seen.get(share.index)
        if prev is not None and prev.value != share.value:
            raise ShareVerificationError(
                f"conflicting values supplied for share index {share.index}"
            )
        seen[share.index] = share
    return list(seen.values())


def lagrange_interpolate(shares: Sequence[Share], prime: int = SHAMIR_PRIME, x: int = 0) -> int:
    """Interpolate the polynomial through `shares` and evaluate it at x.

    No threshold check: with too few points this returns the value of a
    different, lower-degree polynomial.
    """
    points = _distinct(shares)
    result = 0
    for i, share_i in enumerate(points):
        num, den = 1, 1
        for j, share_j in enumerate(points):
            if i == j:
                continue
            num = (num * (x - share_j.index)) % prime
            den = (den * (share_i.index - share_j.index)) % prime
        basis = (num * bigfield.mod_inverse(den, prime)) % prime
        result = (result + share_i.value * basis) % prime
    return result


def reconstruct_secret(
    shares: Sequence[Share],
    threshold: int,
    prime: int = SHAMIR_PRIME,
) -> bytes:
    """Rebuild the secret from at least `threshold` distinct shares.

    Returns the secret as 32 big-endian bytes.
    """
    points = _distinct(shares)
    if len(points) < threshold:
        raise InsufficientSharesError(
            f"need {threshold} distinct shares, got {len(points)}"
        )
    secret = lagrange_interpolate(points[:threshold], prime)
    return bigfield.int_to_fixed_bytes(secret, max(SECRET_BYTES, bigfield.byte_length(prime)))


def combine_shards(shards: Sequence[Dict[str, object]], threshold: int, prime: int = SHAMIR_PRIME) -> int:
    """Rebuild a scalar from loose {"index", "value"} records.

    Values may be ints or hex strings (with or without 0x). Used by callers
    that hold shards outside any ceremony record.
    """
    shares = []
    for shard in shards:
        try:
            index = int(shard["index"])
            raw = shard["value"]
            value = raw if isinstance(raw, int) else int(str(raw), 16)
        except (KeyError, TypeError, ValueError) as exc:
            raise ShareVerificationError(f"malformed shard: {shard!r}") from exc
        shares.append(Share(index=index, value=value))
    return bigfield.bytes_to_int(reconstruct_secret(shares, threshold, prime))
