import os
import sys

import pytest


# Ensure repository src directory is on sys.path for tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from threshold_vote import elgamal  # noqa: E402
from threshold_vote.ceremony import CeremonyManager  # noqa: E402
from threshold_vote.storage import InMemoryCeremonyStore  # noqa: E402


CANDIDATES = ["Alice", "Bob", "Charlie"]


@pytest.fixture(scope="session")
def key_pair():
    # one 2048-bit key pair for the whole run; generation is the slow part
    return elgamal.generate_keys()


@pytest.fixture
def manager():
    return CeremonyManager(InMemoryCeremonyStore(), "test-scope")


@pytest.fixture
def verified_ceremony(manager):
    """A 3-of-5 ceremony walked up to `verified`; yields (manager, id, distribution)."""
    summary = manager.setup_ceremony("election-1", 3, 5)
    cid = summary["ceremony_id"]
    distribution = manager.distribute_shares(cid)
    manager.verify_all_shares(cid)
    return manager, cid, distribution
