import dataclasses

import pytest

from threshold_vote import elgamal, encoding, proofs, tally

from conftest import CANDIDATES


@pytest.fixture(scope="module")
def decryption(key_pair):
    pub = key_pair.public_key
    ct = elgamal.encrypt(pow(pub.g, 3, pub.p), pub)
    m = elgamal.decrypt(ct, key_pair.x, pub.p)
    statement = proofs.ProofStatement.for_ciphertext(pub, ct, m)
    return statement, proofs.generate_proof(statement, key_pair.x)


def test_honest_proof_verifies(decryption):
    statement, proof = decryption
    assert proofs.verify_proof(statement, proof) is True
    assert 0 <= proof.z < statement.p - 1
    assert proof.c == proofs.challenge(statement, proof.a1, proof.a2)


@pytest.mark.parametrize("name", ["m", "c1", "c2"])
def test_mutated_statement_fails(decryption, name):
    statement, proof = decryption
    mutated = dataclasses.replace(statement, **{name: (getattr(statement, name) * 2) % statement.p})
    assert proofs.verify_proof(mutated, proof) is False


@pytest.mark.parametrize("name", ["z", "c", "a1", "a2"])
def test_mutated_proof_fails(decryption, name):
    statement, proof = decryption
    mutated = dataclasses.replace(proof, **{name: getattr(proof, name) + 1})
    assert proofs.verify_proof(statement, mutated) is False


def test_out_of_range_inputs_fail_closed(decryption):
    statement, proof = decryption
    assert proofs.verify_proof(dataclasses.replace(statement, m=0), proof) is False
    assert proofs.verify_proof(dataclasses.replace(statement, c1=statement.p), proof) is False
    assert proofs.verify_proof(statement, dataclasses.replace(proof, z=statement.p - 1)) is False


def test_proof_with_wrong_scalar_fails(key_pair, decryption):
    statement, _ = decryption
    forged = proofs.generate_proof(statement, key_pair.x + 1)
    assert proofs.verify_proof(statement, forged) is False


def test_proof_dict_round_trip(decryption):
    _, proof = decryption
    assert proofs.Proof.from_dict(proof.to_dict()) == proof


def test_tally_proofs(key_pair):
    pub = key_pair.public_key
    ballots = [
        elgamal.encrypt_single_choice(CANDIDATES, choice, pub)
        for choice in ("Alice", "Charlie")
    ]
    result = tally.tally_packed_ballots(ballots, CANDIDATES, key_pair.x, pub, max_count=2)
    tally_proofs = proofs.generate_tally_proofs(pub, key_pair.x, result)
    assert [tp.candidate for tp in tally_proofs] == CANDIDATES

    verification = proofs.verify_tally_proofs(pub, tally_proofs)
    assert verification.valid is True
    assert [r["count"] for r in verification.results] == [1, 0, 1]

    # claiming a different count breaks that candidate and the overall flag
    lying = dataclasses.replace(tally_proofs[1], count=1)
    tampered = [tally_proofs[0], lying, tally_proofs[2]]
    verification = proofs.verify_tally_proofs(pub, tampered)
    assert verification.valid is False
    assert [r["valid"] for r in verification.results] == [True, False, True]

    restored = [proofs.TallyProof.from_dict(tp.to_dict()) for tp in tally_proofs]
    assert proofs.verify_tally_proofs(pub, restored).valid is True


def test_empty_tally_proof_list_is_not_valid(key_pair):
    assert proofs.verify_tally_proofs(key_pair.public_key, []).valid is False


def test_tally_proofs_bound_to_ballots(key_pair):
    pub = key_pair.public_key
    ballots = [
        encoding.encode_packed_ballot(elgamal.encrypt_single_choice(CANDIDATES, c, pub))
        for c in ("Alice", "Bob", "Alice")
    ]
    honest = tally.tally_packed_ballots(ballots, CANDIDATES, key_pair.x, pub, max_count=3)
    honest_proofs = proofs.generate_tally_proofs(pub, key_pair.x, honest)
    assert proofs.verify_tally_proofs(pub, honest_proofs, ballots).valid is True

    # the key holder proves a decryption of a ciphertext unrelated to the ballots
    inflated = pow(pub.g, 1000, pub.p)
    fresh = elgamal.encrypt(inflated, pub)
    forged = dataclasses.replace(
        honest,
        counts=[1000] + honest.counts[1:],
        encrypted_tallies=[fresh] + honest.encrypted_tallies[1:],
        decrypted_values=[inflated] + honest.decrypted_values[1:],
    )
    forged_proofs = proofs.generate_tally_proofs(pub, key_pair.x, forged)
    # internally consistent on its own
    assert proofs.verify_tally_proofs(pub, forged_proofs).valid is True
    checked = proofs.verify_tally_proofs(pub, forged_proofs, ballots)
    assert checked.valid is False
    assert [r["valid"] for r in checked.results] == [False, True, True]
