"""Exception hierarchy for threshold_vote.

Every error raised by the cryptographic core derives from
`ThresholdVoteError`, so adapters can map the whole family in one place.
Value-shaped failures also derive from `ValueError` and lookup failures
from `KeyError`, which keeps plain `except ValueError` callers working.
"""


class ThresholdVoteError(Exception):
    """Base class for all threshold_vote errors."""


class InvalidThresholdError(ThresholdVoteError, ValueError):
    """Threshold outside 2 <= t <= n."""


class InsufficientSharesError(ThresholdVoteError, ValueError):
    """Fewer than threshold distinct shares were supplied."""


class ShareVerificationError(ThresholdVoteError, ValueError):
    """A share does not match its recorded verification hash or polynomial."""


class KeyMismatchError(ThresholdVoteError):
    """Reconstructed scalar does not reproduce the public key."""


class NoInverseError(ThresholdVoteError, ValueError):
    """Modular inverse does not exist (gcd(a, m) != 1)."""


class DiscreteLogNotFoundError(ThresholdVoteError, ValueError):
    """Bounded discrete log search found no exponent."""


class MalformedCiphertextError(ThresholdVoteError, ValueError):
    """Ciphertext bytes/hex could not be decoded."""


class MalformedBallotError(ThresholdVoteError, ValueError):
    """Packed ballot string could not be decoded."""


class InvalidKeyError(ThresholdVoteError, ValueError):
    """Public key parameters failed validation."""


class InvalidStateError(ThresholdVoteError):
    """Ceremony operation attempted from the wrong state."""


class CeremonyNotFoundError(ThresholdVoteError, KeyError):
    """No ceremony with the given id (or election id) exists."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep plain messages
        return str(self.args[0]) if self.args else ""


class UnknownShareholderError(ThresholdVoteError, KeyError):
    """Shareholder id is not part of the ceremony."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
