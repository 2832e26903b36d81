"""Wire formats for ciphertexts, packed ballots and public keys.

- Ciphertext: u32be(len c1) || c1 || u32be(len c2) || c2, minimal
  big-endian integers, hex form with an optional 0x prefix.
- Packed ballot: "KSLOTS:v1:<K>:<ct hex 1>:...:<ct hex K>".
- Public key blob: u32be(len p)||p||u32be(len g)||g||u32be(len h)||h.

Public keys arrive in several shapes; each shape has its own parser and
every parser ends in `validate_key_parameters`.
"""

from __future__ import annotations

import struct
from typing import List, Mapping, Optional, Sequence, Tuple

from . import bigfield
from .elgamal import GROUP_14, Ciphertext, GroupParams, PackedBallot, PublicKey
from .errors import InvalidKeyError, MalformedBallotError, MalformedCiphertextError

PACKED_PREFIX = "KSLOTS"
PACKED_VERSION = "v1"

_LEN = struct.Struct(">I")


def _strip_hex(text: str) -> str:
    text = text.strip()
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    return text


def _pack_fields(values: Sequence[int]) -> bytes:
    out = bytearray()
    for value in values:
        raw = bigfield.int_to_bytes(value)
        out += _LEN.pack(len(raw))
        out += raw
    return bytes(out)


def _unpack_fields(data: bytes, count: int, error) -> List[int]:
    values = []
    offset = 0
    for _ in range(count):
        if offset + _LEN.size > len(data):
            raise error("truncated length prefix")
        (length,) = _LEN.unpack_from(data, offset)
        offset += _LEN.size
        if length == 0 or offset + length > len(data):
            raise error("field length out of bounds")
        values.append(bigfield.bytes_to_int(data[offset:offset + length]))
        offset += length
    if offset != len(data):
        raise error("trailing bytes after last field")
    return values


## --- ciphertexts ----------------------------------------------------------


def ciphertext_to_bytes(ct: Ciphertext) -> bytes:
    return _pack_fields((ct.c1, ct.c2))


def ciphertext_from_bytes(data: bytes) -> Ciphertext:
    c1, c2 = _unpack_fields(data, 2, MalformedCiphertextError)
    return Ciphertext(c1=c1, c2=c2)


def ciphertext_to_hex(ct: Ciphertext) -> str:
    return ciphertext_to_bytes(ct).hex()


def ciphertext_from_hex(text: str) -> Ciphertext:
    if not isinstance(text, str):
        raise MalformedCiphertextError("ciphertext must be a hex string")
    try:
        data = bytes.fromhex(_strip_hex(text))
    except ValueError as exc:
        raise MalformedCiphertextError(f"invalid ciphertext hex: {exc}") from exc
    return ciphertext_from_bytes(data)


def check_ciphertext(ct: Ciphertext, p: int) -> Ciphertext:
    """Reject components outside [1, p-1]."""
    if not (0 < ct.c1 < p and 0 < ct.c2 < p):
        raise MalformedCiphertextError("ciphertext component outside the group")
    return ct


## --- packed ballots -------------------------------------------------------


def encode_packed_ballot(ballot: Sequence[Ciphertext]) -> str:
    parts = [PACKED_PREFIX, PACKED_VERSION, str(len(ballot))]
    parts.extend(ciphertext_to_hex(ct) for ct in ballot)
    return ":".join(parts)


def decode_packed_ballot(text: str, expected_slots: Optional[int] = None) -> PackedBallot:
    """Parse a packed ballot; `expected_slots` pins K to the candidate count."""
    if not isinstance(text, str):
        raise MalformedBallotError("packed ballot must be a string")
    parts = text.strip().split(":")
    if len(parts) < 3 or parts[0] != PACKED_PREFIX or parts[1] != PACKED_VERSION:
        raise MalformedBallotError("missing KSLOTS:v1 header")
    if not (parts[2].isascii() and parts[2].isdecimal()):
        raise MalformedBallotError(f"invalid slot count {parts[2]!r}")
    k = int(parts[2])
    slots = parts[3:]
    if k == 0 or len(slots) != k:
        raise MalformedBallotError(f"header declares {k} slots, found {len(slots)}")
    if expected_slots is not None and k != expected_slots:
        raise MalformedBallotError(f"ballot has {k} slots, expected {expected_slots}")
    try:
        return tuple(ciphertext_from_hex(s) for s in slots)
    except MalformedCiphertextError as exc:
        raise MalformedBallotError(f"bad slot ciphertext: {exc}") from exc


def is_packed_ballot(text: str) -> bool:
    return isinstance(text, str) and text.startswith(PACKED_PREFIX + ":")


## --- public keys ----------------------------------------------------------


def validate_key_parameters(p: int, g: int, h: int) -> PublicKey:
    """Check p odd and > 3, 1 < g < p, 0 < h < p; return the PublicKey."""
    if p <= 3 or p % 2 == 0:
        raise InvalidKeyError("p must be an odd integer greater than 3")
    if not 1 < g < p:
        raise InvalidKeyError("g must satisfy 1 < g < p")
    if not 0 < h < p:
        raise InvalidKeyError("h must satisfy 0 < h < p")
    return PublicKey(p=p, g=g, h=h)


def encode_public_key(key: PublicKey) -> str:
    return _pack_fields((key.p, key.g, key.h)).hex()


def parse_public_key_blob(text: str) -> PublicKey:
    try:
        data = bytes.fromhex(_strip_hex(text))
    except (ValueError, AttributeError) as exc:
        raise InvalidKeyError("public key blob is not hex") from exc
    p, g, h = _unpack_fields(data, 3, InvalidKeyError)
    return validate_key_parameters(p, g, h)


def _hex_int(text: str, name: str) -> int:
    try:
        return int(_strip_hex(str(text)), 16)
    except ValueError as exc:
        raise InvalidKeyError(f"{name} is not valid hex") from exc


def parse_public_key_components(p: str, g: str, h: str) -> PublicKey:
    """Hex-string components."""
    return validate_key_parameters(_hex_int(p, "p"), _hex_int(g, "g"), _hex_int(h, "h"))


def parse_public_key_decimal(p: str, g: str, h: str) -> PublicKey:
    try:
        values: Tuple[int, int, int] = (int(str(p)), int(str(g)), int(str(h)))
    except ValueError as exc:
        raise InvalidKeyError("public key component is not a decimal integer") from exc
    return validate_key_parameters(*values)


def parse_public_key_h(h: str, params: GroupParams = GROUP_14) -> PublicKey:
    """Bare hex h under the default group."""
    return validate_key_parameters(params.p, params.g, _hex_int(h, "h"))


def parse_public_key_mapping(data: Mapping[str, object]) -> PublicKey:
    """{"p", "g", "h"} with int values or hex strings."""
    try:
        raw = [data[k] for k in ("p", "g", "h")]
    except KeyError as exc:
        raise InvalidKeyError(f"public key missing component {exc}") from exc
    values = [v if isinstance(v, int) else _hex_int(v, k) for v, k in zip(raw, "pgh")]
    return validate_key_parameters(*values)


def public_key_to_mapping(key: PublicKey) -> dict:
    return {"p": format(key.p, "x"), "g": format(key.g, "x"), "h": format(key.h, "x")}
