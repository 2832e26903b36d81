"""End-to-end demo: ceremony, encrypted ballots, threshold tally and proofs.

Run with `threshold-vote-demo` (or `python -m threshold_vote.demo`).
"""

import argparse
import hashlib
import random

from . import elgamal, encoding, proofs, tally
from .ceremony import CeremonyManager
from .config import Settings, configure_logging
from .storage import InMemoryCeremonyStore, JsonFileCeremonyStore


def _print_heading(msg: str):
    print()
    print(msg)


def _print_kv(key: str, value):
    print(f"  {key}: {value}")


def _fingerprint(value: int) -> str:
    return hashlib.sha256(format(value, "x").encode()).hexdigest()[:8]


DEFAULT_VOTES = ["Alice"] * 3 + ["Bob"] * 2 + ["Charlie"] * 2


def run(manager: CeremonyManager, candidates, votes, threshold: int = 3, total: int = 5):
    _print_heading("[1] Ceremony setup")
    summary = manager.setup_ceremony("demo-election", threshold, total)
    ceremony_id = summary["ceremony_id"]
    _print_kv("ceremony", ceremony_id)
    _print_kv("threshold", f"{threshold} of {total}")

    _print_heading("[2] Share distribution and verification")
    distribution = manager.distribute_shares(ceremony_id)
    for d in distribution:
        _print_kv(d.shareholder_id, d.verification_hash[:16] + "..")
    report = manager.verify_all_shares(ceremony_id)
    _print_kv("all shares valid", report.all_valid)
    public_key = manager.get_public_key(ceremony_id)
    _print_kv("public key h", _fingerprint(public_key.h))

    _print_heading("[3] Casting encrypted ballots")
    ballots = []
    for vote in votes:
        ballot = elgamal.encrypt_single_choice(candidates, vote, public_key)
        ballots.append(encoding.encode_packed_ballot(ballot))
    _print_kv("ballots cast", len(ballots))

    _print_heading("[4] Threshold decryption")
    chosen = random.sample(distribution, threshold)
    key = manager.threshold_decrypt(
        ceremony_id, {d.shareholder_id: d.share for d in chosen}
    ).key_pair
    _print_kv("shareholders", ", ".join(sorted(d.shareholder_id for d in chosen)))
    result = tally.tally_packed_ballots(
        ballots, candidates, key.x, key.public_key, max_count=len(ballots)
    )
    for name, count in result.as_dict().items():
        _print_kv(name, count)

    _print_heading("[5] Tally proofs")
    tally_proofs = proofs.generate_tally_proofs(key.public_key, key.x, result)
    verification = proofs.verify_tally_proofs(public_key, tally_proofs)
    for item in verification.results:
        _print_kv(item["candidate"], "valid" if item["valid"] else "INVALID")
    _print_kv("overall", verification.valid)

    manager.finalize_ceremony(ceremony_id)
    _print_kv("ceremony status", manager.get_ceremony(ceremony_id)["status"])
    return result, verification


def main(argv=None):
    p = argparse.ArgumentParser(prog="threshold-vote-demo")
    p.add_argument("--data-dir", help="persist ceremonies as JSON under this directory")
    p.add_argument("--threshold", type=int, default=3)
    p.add_argument("--shares", type=int, default=5)
    args = p.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    data_dir = args.data_dir or settings.data_dir
    store = JsonFileCeremonyStore(data_dir) if data_dir else InMemoryCeremonyStore()
    manager = CeremonyManager(store, settings.scope)
    run(manager, ["Alice", "Bob", "Charlie"], DEFAULT_VOTES, args.threshold, args.shares)


if __name__ == "__main__":
    main()
