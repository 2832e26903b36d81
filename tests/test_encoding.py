import pytest

from threshold_vote import elgamal, encoding
from threshold_vote.elgamal import Ciphertext
from threshold_vote.errors import InvalidKeyError, MalformedBallotError, MalformedCiphertextError


def test_ciphertext_wire_layout():
    ct = Ciphertext(c1=1, c2=256)
    raw = encoding.ciphertext_to_bytes(ct)
    assert raw == b"\x00\x00\x00\x01\x01" + b"\x00\x00\x00\x02\x01\x00"
    assert encoding.ciphertext_from_bytes(raw) == ct
    assert encoding.ciphertext_from_hex("0x" + raw.hex()) == ct


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"\x00\x00\x00\x01\x01",  # missing c2
        b"\x00\x00\x00\x01\x01\x00\x00\x00\x05\x01",  # c2 truncated
        b"\x00\x00\x00\x01\x01\x00\x00\x00\x01\x01\xff",  # trailing byte
        b"\x00\x00\x00\x00\x00\x00\x00\x01\x01",  # zero-length c1
    ],
)
def test_malformed_ciphertext_bytes(raw):
    with pytest.raises(MalformedCiphertextError):
        encoding.ciphertext_from_bytes(raw)


def test_malformed_ciphertext_hex():
    with pytest.raises(MalformedCiphertextError):
        encoding.ciphertext_from_hex("zz")
    with pytest.raises(MalformedCiphertextError):
        encoding.ciphertext_from_hex(123)


def test_check_ciphertext_range():
    p = 23
    assert encoding.check_ciphertext(Ciphertext(1, 22), p) == Ciphertext(1, 22)
    with pytest.raises(MalformedCiphertextError):
        encoding.check_ciphertext(Ciphertext(0, 5), p)
    with pytest.raises(MalformedCiphertextError):
        encoding.check_ciphertext(Ciphertext(5, 23), p)


def test_packed_ballot_format():
    ballot = (Ciphertext(2, 3), Ciphertext(4, 5))
    text = encoding.encode_packed_ballot(ballot)
    parts = text.split(":")
    assert parts[:3] == ["KSLOTS", "v1", "2"]
    assert len(parts) == 5
    assert encoding.is_packed_ballot(text)
    assert encoding.decode_packed_ballot(text, expected_slots=2) == ballot


@pytest.mark.parametrize(
    "text",
    [
        "KSLOTS:v2:1:0000000102000000010" + "3",
        "NOPE:v1:1:00",
        "KSLOTS:v1:x:00",
        "KSLOTS:v1:\u00b2:00",
        "KSLOTS:v1:2:0000000102000000010" + "3",
        "KSLOTS:v1:0",
        "KSLOTS:v1:1:zz",
    ],
)
def test_malformed_packed_ballots(text):
    with pytest.raises(MalformedBallotError):
        encoding.decode_packed_ballot(text)


def test_packed_ballot_slot_count_must_match_candidates():
    text = encoding.encode_packed_ballot((Ciphertext(2, 3),))
    with pytest.raises(MalformedBallotError):
        encoding.decode_packed_ballot(text, expected_slots=3)


def test_public_key_formats_agree():
    key = encoding.validate_key_parameters(elgamal.GROUP_14.p, 2, 12345)
    blob = encoding.encode_public_key(key)
    assert encoding.parse_public_key_blob(blob) == key
    assert encoding.parse_public_key_blob("0x" + blob) == key
    mapping = encoding.public_key_to_mapping(key)
    assert encoding.parse_public_key_mapping(mapping) == key
    assert encoding.parse_public_key_components(mapping["p"], mapping["g"], "0x" + mapping["h"]) == key
    assert encoding.parse_public_key_decimal(str(key.p), "2", "12345") == key
    assert encoding.parse_public_key_h(format(12345, "x")) == key


@pytest.mark.parametrize(
    "p,g,h",
    [(24, 2, 5), (3, 2, 1), (23, 1, 5), (23, 23, 5), (23, 5, 0), (23, 5, 23)],
)
def test_invalid_key_parameters(p, g, h):
    with pytest.raises(InvalidKeyError):
        encoding.validate_key_parameters(p, g, h)


def test_unparseable_public_keys():
    with pytest.raises(InvalidKeyError):
        encoding.parse_public_key_blob("not hex")
    with pytest.raises(InvalidKeyError):
        encoding.parse_public_key_blob("00000001")
    with pytest.raises(InvalidKeyError):
        encoding.parse_public_key_mapping({"p": "17", "g": "3"})
    with pytest.raises(InvalidKeyError):
        encoding.parse_public_key_decimal("p", "2", "3")
