"""threshold_vote package - threshold ElGamal voting engine.

Shamir-shared key ceremonies, K-slot homomorphic ballots and Chaum-Pedersen
tally proofs, with a thin Flask adapter and a requests-based CLI.
"""

from . import bigfield, ceremony, elgamal, encoding, errors, proofs, shamir, storage, tally

__version__ = "0.1.0"
