"""Arbitrary-precision modular arithmetic used by every other module.

Two moduli are in play across the package and are never mixed: the ElGamal
group prime p and the Shamir field prime q. The helpers here are agnostic
to which one they receive.
"""

from typing import Optional
import secrets

from .errors import NoInverseError


def mod_pow(
    base: int,
    exponent: int,
    modulus: int,
    secret: bool = False,
    width: Optional[int] = None,
) -> int:
    """Compute base^exponent mod modulus.

    Public exponents go through the builtin three-argument pow. When
    `secret` is set a Montgomery ladder is used instead: it performs one
    multiply and one square per bit of a fixed width (the exponent's bit
    length, or `width` when supplied) regardless of the bit values.

    Negative exponents are served through `mod_inverse` and a modulus of 1
    yields 0.
    """
    if modulus <= 0:
        raise ValueError("modulus must be positive")
    if modulus == 1:
        return 0
    if exponent < 0:
        base = mod_inverse(base, modulus)
        exponent = -exponent
    base %= modulus
    if not secret:
        return pow(base, exponent, modulus)

    bits = width if width is not None else max(exponent.bit_length(), 1)
    if exponent.bit_length() > bits:
        raise ValueError("exponent wider than the requested ladder width")
    r0, r1 = 1, base
    for i in range(bits - 1, -1, -1):
        if (exponent >> i) & 1:
            r0 = (r0 * r1) % modulus
            r1 = (r1 * r1) % modulus
        else:
            r1 = (r0 * r1) % modulus
            r0 = (r0 * r0) % modulus
    return r0


def mod_inverse(a: int, m: int) -> int:
    """Return a^-1 mod m via the extended Euclidean algorithm.

    Raises NoInverseError when gcd(a, m) != 1.
    """
    if m <= 0:
        raise ValueError("modulus must be positive")
    old_r, r = a % m, m
    old_s, s = 1, 0
    while r != 0:
        quotient = old_r // r
        old_r, r = r, old_r - quotient * r
        old_s, s = s, old_s - quotient * s
    if old_r != 1:
        raise NoInverseError(f"{a} has no inverse modulo {m}")
    return old_s % m


def random_field_element(min_value: int, max_value: int) -> int:
    """Uniform integer in [min_value, max_value] from the OS CSPRNG.

    Draws exactly as many bits as the span needs and rejects out-of-range
    candidates, so there is no modulo bias.
    """
    span = max_value - min_value + 1
    if span <= 0:
        raise ValueError(f"empty range [{min_value}, {max_value}]")
    bits = (span - 1).bit_length()
    if bits == 0:
        return min_value
    nbytes = (bits + 7) // 8
    excess = nbytes * 8 - bits
    while True:
        candidate = int.from_bytes(secrets.token_bytes(nbytes), "big") >> excess
        if candidate < span:
            return min_value + candidate


def byte_length(value: int) -> int:
    """Minimal number of bytes needed for a non-negative integer (at least 1)."""
    return max(1, (value.bit_length() + 7) // 8)


def int_to_bytes(value: int) -> bytes:
    """Minimal big-endian encoding; zero encodes as a single 0x00 byte."""
    if value < 0:
        raise ValueError("cannot encode a negative integer")
    return value.to_bytes(byte_length(value), "big")


def int_to_fixed_bytes(value: int, length: int) -> bytes:
    if value < 0:
        raise ValueError("cannot encode a negative integer")
    return value.to_bytes(length, "big")


def bytes_to_int(data: bytes) -> int:
    return int.from_bytes(data, "big")
