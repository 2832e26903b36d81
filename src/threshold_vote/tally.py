"""Homomorphic tallying of K-slot packed ballots and legacy single votes.

The private scalar handed to these functions is expected to be the one
reconstructed by `CeremonyManager.threshold_decrypt`; it is used for the
duration of the call and never stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Union

from . import elgamal, encoding
from .elgamal import Ciphertext, PackedBallot, PublicKey
from .errors import DiscreteLogNotFoundError, MalformedBallotError, MalformedCiphertextError

logger = logging.getLogger(__name__)

# Hook for ballot validity proofs; receives the decoded ballot and must
# raise MalformedBallotError to reject it.
BallotValidator = Callable[[PackedBallot, PublicKey], None]


@dataclass(frozen=True)
class TallyResult:
    """Per-candidate outcome of a tally

    Attributes
    - candidates: candidate names in slot order
    - counts: recovered vote counts, same order
    - encrypted_tallies: combined ciphertext per slot
    - decrypted_values: g^count per slot as decrypted
    - ballot_count: number of ballots combined
    - counted_total: sum of the recovered counts; equals ballot_count
      for one-hot ballots, anything else means a tampered or stuffed slot
    """

    candidates: List[str]
    counts: List[int]
    encrypted_tallies: List[Ciphertext]
    decrypted_values: List[int]
    ballot_count: int
    counted_total: int

    @property
    def consistent(self) -> bool:
        return self.counted_total == self.ballot_count

    def as_dict(self) -> Dict[str, int]:
        return dict(zip(self.candidates, self.counts))


def _coerce_ballot(ballot: Union[str, PackedBallot], slots: int, p: int) -> PackedBallot:
    if isinstance(ballot, str):
        decoded = encoding.decode_packed_ballot(ballot, expected_slots=slots)
    elif not isinstance(ballot, (tuple, list)) or not all(isinstance(ct, Ciphertext) for ct in ballot):
        raise MalformedBallotError(f"unsupported ballot type {type(ballot).__name__}")
    else:
        decoded = tuple(ballot)
        if len(decoded) != slots:
            raise MalformedBallotError(f"ballot has {len(decoded)} slots, expected {slots}")
    try:
        for ct in decoded:
            encoding.check_ciphertext(ct, p)
    except MalformedCiphertextError as exc:
        raise MalformedBallotError(str(exc)) from exc
    return decoded


def combine_slots(ballots: Sequence[PackedBallot], slots: int, p: int) -> List[Ciphertext]:
    """Multiply slot k across all ballots, for every k."""
    combined = [elgamal.NEUTRAL] * slots
    for ballot in ballots:
        for k, ct in enumerate(ballot):
            combined[k] = elgamal.add_encrypted(combined[k], ct, p)
    return combined


def encrypted_tally(
    ballots: Sequence[Union[str, PackedBallot]],
    candidates: Sequence[str],
    public_key: PublicKey,
) -> List[Ciphertext]:
    """Per-candidate encrypted sums, computable by anyone holding the ballots.

    No decryption happens here; the result is what tally proofs must be
    made against.
    """
    if not candidates:
        raise ValueError("candidate list is empty")
    decoded = [_coerce_ballot(b, len(candidates), public_key.p) for b in ballots]
    return combine_slots(decoded, len(candidates), public_key.p)


def tally_packed_ballots(
    ballots: Sequence[Union[str, PackedBallot]],
    candidates: Sequence[str],
    private_scalar: int,
    public_key: PublicKey,
    max_count: int,
    validator: Optional[BallotValidator] = None,
) -> TallyResult:
    """Combine, decrypt and count packed ballots.

    Args
    - ballots: encoded "KSLOTS:v1:..." strings or decoded slot tuples
    - candidates: names in slot order; K = len(candidates)
    - private_scalar: reconstructed ElGamal x
    - public_key: the election public key
    - max_count: discrete-log search bound, clamped to the ballot count

    Returns: a TallyResult. One decryption per candidate, not per ballot.
    """
    if not candidates:
        raise ValueError("candidate list is empty")
    if max_count < 0:
        raise ValueError("max_count must be non-negative")
    p, g = public_key.p, public_key.g
    decoded = []
    for ballot in ballots:
        item = _coerce_ballot(ballot, len(candidates), p)
        if validator is not None:
            validator(item, public_key)
        decoded.append(item)

    bound = min(max_count, len(decoded))
    combined = combine_slots(decoded, len(candidates), p)
    counts: List[int] = []
    values: List[int] = []
    for name, ct in zip(candidates, combined):
        gm = elgamal.decrypt(ct, private_scalar, p)
        try:
            counts.append(elgamal.recover_count(gm, g, p, bound))
        except DiscreteLogNotFoundError:
            logger.error("count for %s not found within bound %d", name, bound)
            raise
        values.append(gm)

    if sum(counts) != len(decoded):
        logger.error(
            "slot counts sum to %d over %d ballots", sum(counts), len(decoded)
        )
    logger.info("tallied %d ballots over %d candidates", len(decoded), len(candidates))
    return TallyResult(
        candidates=list(candidates),
        counts=counts,
        encrypted_tallies=combined,
        decrypted_values=values,
        ballot_count=len(decoded),
        counted_total=sum(counts),
    )


@dataclass(frozen=True)
class LegacyTally:
    counts: Dict[str, int]
    invalid: int
    total: int


def tally_legacy_votes(
    ciphertexts: Sequence[Union[str, Ciphertext]],
    candidates: Sequence[str],
    private_scalar: int,
    public_key: PublicKey,
) -> LegacyTally:
    """Decrypt each single-ciphertext vote and match it to SHA-256(candidate).

    Votes that fail to decode or match no candidate are counted as invalid.
    """
    p = public_key.p
    lookup = {elgamal.candidate_message(name, p): name for name in candidates}
    counts = {name: 0 for name in candidates}
    invalid = 0
    for item in ciphertexts:
        if not isinstance(item, (str, Ciphertext)):
            raise MalformedCiphertextError(f"unsupported vote type {type(item).__name__}")
        try:
            ct = encoding.ciphertext_from_hex(item) if isinstance(item, str) else item
            encoding.check_ciphertext(ct, p)
        except MalformedCiphertextError as exc:
            logger.warning("skipping undecodable vote: %s", exc)
            invalid += 1
            continue
        name = lookup.get(elgamal.decrypt(ct, private_scalar, p))
        if name is None:
            invalid += 1
        else:
            counts[name] += 1
    return LegacyTally(counts=counts, invalid=invalid, total=len(ciphertexts))
