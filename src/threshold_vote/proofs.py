"""Chaum-Pedersen proofs of correct decryption.

Statement: log_g(h) == log_c1(c2 / m), i.e. the holder of x with h = g^x
decrypted (c1, c2) to m. Non-interactive via Fiat-Shamir:

    a1 = g^w, a2 = c1^w
    c  = SHA-256(g || h || c1 || c2 || m || a1 || a2) mod (p-1)
    z  = (w - c*x) mod (p-1)

Each value is hashed as a fixed-width big-endian integer (width = byte
length of p). Verification fails closed on any malformed input.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from . import bigfield
from .elgamal import Ciphertext, PackedBallot, PublicKey
from .errors import NoInverseError
from .tally import TallyResult, encrypted_tally

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProofStatement:
    """Public inputs of a decryption proof

    Attributes
    - g, h, p: the public key
    - c1, c2: the ciphertext that was decrypted
    - m: the claimed plaintext group element
    """

    g: int
    h: int
    c1: int
    c2: int
    m: int
    p: int

    @classmethod
    def for_ciphertext(cls, public_key: PublicKey, ct: Ciphertext, m: int) -> "ProofStatement":
        return cls(g=public_key.g, h=public_key.h, c1=ct.c1, c2=ct.c2, m=m, p=public_key.p)


@dataclass(frozen=True)
class Proof:
    a1: int
    a2: int
    z: int
    c: int

    def to_dict(self) -> Dict[str, str]:
        return {k: format(getattr(self, k), "x") for k in ("a1", "a2", "z", "c")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proof":
        return cls(**{k: _as_int(data[k]) for k in ("a1", "a2", "z", "c")})


def _as_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    text = str(value)
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    return int(text, 16)


def challenge(statement: ProofStatement, a1: int, a2: int) -> int:
    width = bigfield.byte_length(statement.p)
    digest = hashlib.sha256()
    for value in (statement.g, statement.h, statement.c1, statement.c2, statement.m, a1, a2):
        digest.update(bigfield.int_to_fixed_bytes(value, width))
    return bigfield.bytes_to_int(digest.digest()) % (statement.p - 1)


def generate_proof(statement: ProofStatement, x: int) -> Proof:
    """Prove knowledge of x with h = g^x and c1^x = c2 / m."""
    p = statement.p
    order = p - 1
    width = p.bit_length()
    w = bigfield.random_field_element(2, p - 2)
    a1 = bigfield.mod_pow(statement.g, w, p, secret=True, width=width)
    a2 = bigfield.mod_pow(statement.c1, w, p, secret=True, width=width)
    c = challenge(statement, a1, a2)
    z = (w - c * x) % order
    return Proof(a1=a1, a2=a2, z=z, c=c)


def verify_proof(statement: ProofStatement, proof: Proof) -> bool:
    p = statement.p
    order = p - 1
    group_values = (statement.g, statement.h, statement.c1, statement.c2, statement.m, proof.a1, proof.a2)
    if p <= 3 or any(not 0 < v < p for v in group_values):
        return False
    if not (0 <= proof.z < order and 0 <= proof.c < order):
        return False
    if challenge(statement, proof.a1, proof.a2) != proof.c:
        return False
    try:
        m_inv = bigfield.mod_inverse(statement.m, p)
    except NoInverseError:
        return False

    lhs1 = (pow(statement.g, proof.z, p) * pow(statement.h, proof.c, p)) % p
    if lhs1 != proof.a1:
        return False
    shared = (statement.c2 * m_inv) % p
    lhs2 = (pow(statement.c1, proof.z, p) * pow(shared, proof.c, p)) % p
    return lhs2 == proof.a2


## --- tally proofs ---------------------------------------------------------


@dataclass(frozen=True)
class TallyProof:
    candidate: str
    count: int
    encrypted_tally: Ciphertext
    decrypted_value: int
    proof: Proof

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate": self.candidate,
            "count": self.count,
            "encrypted_tally": {
                "c1": format(self.encrypted_tally.c1, "x"),
                "c2": format(self.encrypted_tally.c2, "x"),
            },
            "decrypted_value": format(self.decrypted_value, "x"),
            "proof": self.proof.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TallyProof":
        enc = data["encrypted_tally"]
        return cls(
            candidate=str(data["candidate"]),
            count=int(data["count"]),
            encrypted_tally=Ciphertext(c1=_as_int(enc["c1"]), c2=_as_int(enc["c2"])),
            decrypted_value=_as_int(data["decrypted_value"]),
            proof=Proof.from_dict(data["proof"]),
        )


@dataclass
class TallyVerification:
    valid: bool
    results: List[Dict[str, Any]] = field(default_factory=list)


def generate_tally_proofs(
    public_key: PublicKey, private_scalar: int, tally: TallyResult
) -> List[TallyProof]:
    """One decryption proof per candidate's combined ciphertext."""
    out: List[TallyProof] = []
    for candidate, count, ct, gm in zip(
        tally.candidates, tally.counts, tally.encrypted_tallies, tally.decrypted_values
    ):
        statement = ProofStatement.for_ciphertext(public_key, ct, gm)
        out.append(
            TallyProof(
                candidate=candidate,
                count=count,
                encrypted_tally=ct,
                decrypted_value=gm,
                proof=generate_proof(statement, private_scalar),
            )
        )
    logger.info("generated %d tally proofs", len(out))
    return out


def verify_tally_proofs(
    public_key: PublicKey,
    tally_proofs: Sequence[TallyProof],
    ballots: Optional[Sequence[Union[str, PackedBallot]]] = None,
) -> TallyVerification:
    """Check every proof and that g^count matches the decrypted value.

    When `ballots` is given, each proof must also be made against the
    homomorphic sum of those ballots for its slot, and no count may exceed
    the number of ballots. Without it only internal consistency is checked.
    """
    expected: Optional[List[Ciphertext]] = None
    if ballots is not None and tally_proofs:
        expected = encrypted_tally(ballots, [tp.candidate for tp in tally_proofs], public_key)
    results = []
    for k, tp in enumerate(tally_proofs):
        statement = ProofStatement.for_ciphertext(public_key, tp.encrypted_tally, tp.decrypted_value)
        ok = tp.count >= 0 and pow(public_key.g, tp.count, public_key.p) == tp.decrypted_value
        if expected is not None:
            ok = ok and tp.encrypted_tally == expected[k] and tp.count <= len(ballots)
        ok = ok and verify_proof(statement, tp.proof)
        if not ok:
            logger.warning("tally proof for %s failed verification", tp.candidate)
        results.append({"candidate": tp.candidate, "count": tp.count, "valid": ok})
    valid = bool(results) and all(r["valid"] for r in results)
    return TallyVerification(valid=valid, results=results)
