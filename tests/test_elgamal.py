import pytest

from threshold_vote import elgamal
from threshold_vote.errors import DiscreteLogNotFoundError, KeyMismatchError

from conftest import CANDIDATES


def test_group_14_parameters():
    assert elgamal.GROUP_14.p.bit_length() == 2048
    assert elgamal.GROUP_14.g == 2
    assert elgamal.GROUP_14.p % 2 == 1


def test_generated_key_is_consistent(key_pair):
    assert 2 <= key_pair.x <= key_pair.p - 2
    assert pow(key_pair.g, key_pair.x, key_pair.p) == key_pair.h
    assert "hidden" in repr(key_pair)


def test_encrypt_decrypt_and_recover(key_pair):
    pub = key_pair.public_key
    for m in (0, 1, 4):
        gm = pow(pub.g, m, pub.p)
        ct = elgamal.encrypt(gm, pub)
        assert elgamal.decrypt(ct, key_pair.x, pub.p) == gm
        assert elgamal.recover_count(elgamal.decrypt(ct, key_pair.x, pub.p), pub.g, pub.p, 10) == m


def test_homomorphic_addition(key_pair):
    pub = key_pair.public_key
    a = elgamal.encrypt(pow(pub.g, 2, pub.p), pub)
    b = elgamal.encrypt(pow(pub.g, 3, pub.p), pub)
    combined = elgamal.add_encrypted(a, b, pub.p)
    gm = elgamal.decrypt(combined, key_pair.x, pub.p)
    assert elgamal.recover_count(gm, pub.g, pub.p, 7) == 5
    # the neutral ciphertext leaves a sum unchanged
    assert elgamal.combine([a, b], pub.p) == combined


def test_encrypt_rejects_non_group_messages(key_pair):
    pub = key_pair.public_key
    with pytest.raises(ValueError):
        elgamal.encrypt(0, pub)
    with pytest.raises(ValueError):
        elgamal.encrypt(pub.p, pub)


def test_recover_count_bound():
    p, g = elgamal.GROUP_14.p, elgamal.GROUP_14.g
    with pytest.raises(DiscreteLogNotFoundError):
        elgamal.recover_count(pow(g, 6, p), g, p, 5)
    assert elgamal.recover_count(1, g, p, 0) == 0
    with pytest.raises(ValueError):
        elgamal.recover_count(1, g, p, -1)


def test_key_pair_import_checks_public_component(key_pair):
    ok = elgamal.KeyPair.from_components(key_pair.p, key_pair.g, key_pair.h, key_pair.x)
    assert ok == key_pair
    with pytest.raises(KeyMismatchError):
        elgamal.KeyPair.from_components(key_pair.p, key_pair.g, key_pair.h, key_pair.x + 1)


def test_encrypt_single_choice_slots(key_pair):
    pub = key_pair.public_key
    ballot = elgamal.encrypt_single_choice(CANDIDATES, "Bob", pub)
    assert len(ballot) == len(CANDIDATES)
    plain = [elgamal.decrypt(ct, key_pair.x, pub.p) for ct in ballot]
    assert plain == [1, pub.g, 1]

    by_index = elgamal.encrypt_single_choice(CANDIDATES, 2, pub)
    assert elgamal.decrypt(by_index[2], key_pair.x, pub.p) == pub.g

    with pytest.raises(ValueError):
        elgamal.encrypt_single_choice(CANDIDATES, "Mallory", pub)
    with pytest.raises(ValueError):
        elgamal.encrypt_single_choice(CANDIDATES, 3, pub)
    with pytest.raises(ValueError):
        elgamal.encrypt_single_choice([], "Alice", pub)


def test_candidate_message_is_deterministic():
    assert elgamal.candidate_message("Alice") == elgamal.candidate_message("Alice")
    assert elgamal.candidate_message("Alice") != elgamal.candidate_message("Bob")
