"""ElGamal over the RFC 3526 2048-bit MODP group (Group 14, g = 2).

Votes are carried "in the exponent": a slot encrypting g^b with b in {0, 1}.
Multiplying ciphertexts adds exponents, so the product of every ballot's
slot k decrypts to g^(votes for k), and the count is recovered with a
bounded discrete log search.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple, Union

from . import bigfield
from .errors import DiscreteLogNotFoundError, KeyMismatchError


# RFC 3526 2048-bit MODP Group (Group 14) prime p
# Source for prime: https://datatracker.ietf.org/doc/html/rfc3526
_P_HEX = (
    "FFFFFFFFFFFFFFFFC90FDAA22168C234C4C6628B80DC1CD1"
    "29024E088A67CC74020BBEA63B139B22514A08798E3404DD"
    "EF9519B3CD3A431B302B0A6DF25F14374FE1356D6D51C245"
    "E485B576625E7EC6F44C42E9A637ED6B0BFF5CB6F406B7ED"
    "EE386BFB5A899FA5AE9F24117C4B1FE649286651ECE45B3D"
    "C2007CB8A163BF0598DA48361C55D39A69163FA8FD24CF5F"
    "83655D23DCA3AD961C62F356208552BB9ED529077096966D"
    "670C354E4ABC9804F1746C08CA18217C32905E462E36CE3B"
    "E39E772C180E86039B2783A2EC07A28FB5C55DF06F4C52C9"
    "DE2BCBF6955817183995497CEA956AE515D2261898FA0510"
    "15728E5A8AACAA68FFFFFFFFFFFFFFFF"
)


@dataclass(frozen=True)
class GroupParams:
    """ElGamal group params

    Attributes
    - p: safe prime modulus
    - g: generator (here: g=2)
    """

    p: int
    g: int


GROUP_14 = GroupParams(p=int(_P_HEX, 16), g=2)


@dataclass(frozen=True)
class PublicKey:
    """ElGamal public key

    Attributes
    - p, g: group parameters
    - h: public component h = g^x mod p
    """

    p: int
    g: int
    h: int

    @property
    def params(self) -> GroupParams:
        return GroupParams(p=self.p, g=self.g)


@dataclass(frozen=True)
class KeyPair:
    """ElGamal key pair

    Attributes
    - p, g, h: the public key
    - x: secret exponent with g^x = h mod p
    """

    p: int
    g: int
    h: int
    x: int

    @property
    def public_key(self) -> PublicKey:
        return PublicKey(p=self.p, g=self.g, h=self.h)

    @classmethod
    def from_components(cls, p: int, g: int, h: int, x: int) -> "KeyPair":
        """Import a key pair, rejecting it unless g^x == h mod p."""
        if bigfield.mod_pow(g, x, p, secret=True) != h % p:
            raise KeyMismatchError("private scalar does not match public key")
        return cls(p=p, g=g, h=h, x=x)

    def __repr__(self) -> str:
        return f"KeyPair(p=<{self.p.bit_length()} bits>, g={self.g}, h=0x{self.h:x}, x=<hidden>)"


@dataclass(frozen=True)
class Ciphertext:
    """ElGamal ciphertext (c1, c2) = (g^r, m * h^r) mod p."""

    c1: int
    c2: int


PackedBallot = Tuple[Ciphertext, ...]

# (1, 1) encrypts g^0 with r = 0 and is the identity for add_encrypted
NEUTRAL = Ciphertext(c1=1, c2=1)


def generate_keys(params: GroupParams = GROUP_14) -> KeyPair:
    """Fresh key pair with x uniform in [2, p-2]."""
    x = bigfield.random_field_element(2, params.p - 2)
    h = bigfield.mod_pow(params.g, x, params.p, secret=True)
    return KeyPair(p=params.p, g=params.g, h=h, x=x)


def encrypt(message: int, public_key: PublicKey, r: Union[int, None] = None) -> Ciphertext:
    """Encrypt a group element 0 < message < p.

    `r` is drawn uniformly from [1, p-2] unless supplied.
    """
    p = public_key.p
    if not 0 < message < p:
        raise ValueError("message must be a group element in (0, p)")
    if r is None:
        r = bigfield.random_field_element(1, p - 2)
    width = p.bit_length()
    c1 = bigfield.mod_pow(public_key.g, r, p, secret=True, width=width)
    s = bigfield.mod_pow(public_key.h, r, p, secret=True, width=width)
    return Ciphertext(c1=c1, c2=(message * s) % p)


def encode_choice(bit: int, params: GroupParams = GROUP_14) -> int:
    if bit not in (0, 1):
        raise ValueError("choice must be 0 or 1")
    return bigfield.mod_pow(params.g, bit, params.p)


def encrypt_single_choice(
    candidates: Sequence[str],
    selected: Union[str, int],
    public_key: PublicKey,
) -> PackedBallot:
    """Encrypt a one-of-K choice as K slots, slot order equal to candidate order.

    `selected` is a candidate name or its zero-based index.
    """
    if not candidates:
        raise ValueError("candidate list is empty")
    if isinstance(selected, int) and not isinstance(selected, bool):
        if not 0 <= selected < len(candidates):
            raise ValueError(f"candidate index {selected} out of range")
        chosen = selected
    else:
        try:
            chosen = list(candidates).index(selected)
        except ValueError:
            raise ValueError(f"Choice '{selected}' is not a candidate.") from None
    params = public_key.params
    return tuple(
        encrypt(encode_choice(1 if k == chosen else 0, params), public_key)
        for k in range(len(candidates))
    )


def add_encrypted(a: Ciphertext, b: Ciphertext, p: int) -> Ciphertext:
    """Homomorphic combination: E(m1) * E(m2) = E(m1 * m2)."""
    return Ciphertext(c1=(a.c1 * b.c1) % p, c2=(a.c2 * b.c2) % p)


def combine(ciphertexts: Iterable[Ciphertext], p: int) -> Ciphertext:
    acc = NEUTRAL
    for ct in ciphertexts:
        acc = add_encrypted(acc, ct, p)
    return acc


def decrypt(ciphertext: Ciphertext, private_scalar: int, p: int) -> int:
    """Return the plaintext group element c2 * (c1^x)^-1 mod p."""
    s = bigfield.mod_pow(ciphertext.c1, private_scalar, p, secret=True, width=p.bit_length())
    return (ciphertext.c2 * bigfield.mod_inverse(s, p)) % p


def recover_count(gm: int, g: int, p: int, max_value: int) -> int:
    """Find m in [0, max_value] with g^m == gm mod p by linear search."""
    if max_value < 0:
        raise ValueError("max_value must be non-negative")
    target = gm % p
    cur = 1
    for m in range(max_value + 1):
        if cur == target:
            return m
        cur = (cur * g) % p
    raise DiscreteLogNotFoundError(f"no exponent in [0, {max_value}] matches")


def candidate_message(name: str, p: int = GROUP_14.p) -> int:
    """Plaintext for a legacy single-ciphertext vote: SHA-256(name) as an integer."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return bigfield.bytes_to_int(digest) % p


def encrypt_candidate(name: str, public_key: PublicKey) -> Ciphertext:
    return encrypt(candidate_message(name, public_key.p), public_key)
