"""Flask API around the ceremony manager and the tally engine.

Endpoints:
- GET  /health
- POST /dkg/setup                 {"election_id", "threshold"?, "total_shares"?, "shareholder_ids"?}
- POST /dkg/distribute-shares     {"ceremony_id"}
- POST /dkg/verify-shares         {"ceremony_id"}
- GET  /dkg/ceremony/<ceremony_id>
- GET  /dkg/public-key/<election_id>
- POST /dkg/threshold-decrypt     {"ceremony_id", "shares": [{"shareholder_id", "share"}]}
- POST /dkg/finalize              {"ceremony_id"}
- GET  /dkg/ceremonies
- GET  /dkg/shards/<election_id>
- POST /dkg/homomorphic-tally     {"ceremony_id", "candidates", "ballots"}
- POST /api/encrypt               {"public_key", "candidates", "choice"} or {"public_key", "candidate"}
- POST /api/decrypt/batch         {"ceremony_id", "shares", "candidates", "ballots", "max_count"?}
- POST /api/decrypt/single        {"ceremony_id", "shares", "candidates", "ciphertext"}
- POST /api/threshold/combine-shards {"shards": [{"index", "value"}], "threshold", "public_key"?}
- POST /api/proofs/verify         {"public_key", "proofs": [...], "ballots"?}

Public keys are accepted as {"p", "g", "h"} (hex), a blob hex string
("public_key_blob") or a bare hex h ("public_key_h") under Group 14.
Reconstructed scalars are used within a request and never returned or kept.
"""

import hashlib
import logging
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, current_app, jsonify, request

from . import bigfield, elgamal, encoding, proofs, shamir, tally
from .ceremony import CeremonyManager
from .config import Settings, configure_logging
from .errors import (
    CeremonyNotFoundError,
    InvalidKeyError,
    InvalidStateError,
    KeyMismatchError,
    ThresholdVoteError,
    UnknownShareholderError,
)
from .storage import CeremonyStore, InMemoryCeremonyStore, JsonFileCeremonyStore

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (CeremonyNotFoundError, 404),
    (UnknownShareholderError, 400),
    (InvalidStateError, 409),
    (KeyMismatchError, 409),
)


def _manager() -> CeremonyManager:
    return current_app.config["CEREMONY_MANAGER"]


def _shares_from(data: Dict[str, Any]) -> Optional[List[Tuple[str, str]]]:
    shares = data.get("shares")
    if not isinstance(shares, list):
        return None
    out = []
    for item in shares:
        if not isinstance(item, dict):
            return None
        sid, value = item.get("shareholder_id"), item.get("share")
        if not isinstance(sid, str) or not isinstance(value, (str, int)):
            return None
        out.append((sid, value))
    return out


def _public_key_from(data: Dict[str, Any]) -> elgamal.PublicKey:
    if isinstance(data.get("public_key"), dict):
        return encoding.parse_public_key_mapping(data["public_key"])
    if isinstance(data.get("public_key_blob"), str):
        return encoding.parse_public_key_blob(data["public_key_blob"])
    if isinstance(data.get("public_key_h"), str):
        return encoding.parse_public_key_h(data["public_key_h"])
    raise InvalidKeyError("missing public_key, public_key_blob or public_key_h")


def _candidates_from(data: Dict[str, Any]) -> Optional[List[str]]:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    if not all(isinstance(c, str) for c in candidates):
        return None
    return candidates


def create_app(settings: Optional[Settings] = None, store: Optional[CeremonyStore] = None) -> Flask:
    """Build the Flask app; `store` overrides the one derived from settings."""
    settings = settings or Settings.from_env()
    if store is None:
        store = (
            JsonFileCeremonyStore(settings.data_dir)
            if settings.data_dir
            else InMemoryCeremonyStore()
        )

    app = Flask(__name__)
    app.config["SETTINGS"] = settings
    app.config["CEREMONY_MANAGER"] = CeremonyManager(store, settings.scope)

    @app.errorhandler(ThresholdVoteError)
    def handle_threshold_vote_error(exc):
        status = 400
        for kind, code in _STATUS_BY_ERROR:
            if isinstance(exc, kind):
                status = code
                break
        logger.warning("%s: %s", type(exc).__name__, exc)
        return jsonify({"error": str(exc), "type": type(exc).__name__}), status

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "scope": settings.scope})

    ## --- DKG ceremony -----------------------------------------------------

    @app.route("/dkg/setup", methods=["POST"])
    def setup():
        """Create a ceremony for an election."""
        data = request.get_json(silent=True) or {}
        election_id = data.get("election_id")
        if not isinstance(election_id, (str, int)) or isinstance(election_id, bool):
            return jsonify({"error": "missing election_id"}), 400
        threshold = data.get("threshold", settings.default_threshold)
        total = data.get("total_shares", settings.default_shares)
        ids = data.get("shareholder_ids")
        if not isinstance(threshold, int) or not isinstance(total, int):
            return jsonify({"error": "threshold and total_shares must be integers"}), 400
        if ids is not None and not (
            isinstance(ids, list) and all(isinstance(i, str) for i in ids)
        ):
            return jsonify({"error": "shareholder_ids must be a list of strings"}), 400
        try:
            summary = _manager().setup_ceremony(str(election_id), threshold, total, ids)
        except ThresholdVoteError:
            raise
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify(summary), 201

    @app.route("/dkg/distribute-shares", methods=["POST"])
    def distribute_shares():
        data = request.get_json(silent=True) or {}
        ceremony_id = data.get("ceremony_id")
        if not isinstance(ceremony_id, str):
            return jsonify({"error": "missing ceremony_id"}), 400
        distribution = _manager().distribute_shares(ceremony_id)
        record = _manager().get_ceremony(ceremony_id)
        return jsonify(
            {
                "ceremony_id": ceremony_id,
                "status": record["status"],
                "threshold": record["threshold"],
                "distribution": [d.to_dict() for d in distribution],
            }
        )

    @app.route("/dkg/verify-shares", methods=["POST"])
    def verify_shares():
        data = request.get_json(silent=True) or {}
        ceremony_id = data.get("ceremony_id")
        if not isinstance(ceremony_id, str):
            return jsonify({"error": "missing ceremony_id"}), 400
        return jsonify(_manager().verify_all_shares(ceremony_id).to_dict())

    @app.route("/dkg/ceremony/<ceremony_id>", methods=["GET"])
    def get_ceremony(ceremony_id):
        return jsonify(_manager().get_ceremony(ceremony_id))

    @app.route("/dkg/public-key/<election_id>", methods=["GET"])
    def get_public_key(election_id):
        """Published election key; 409 until the ceremony is verified."""
        record = _manager().find_by_election(election_id)
        key = _manager().get_public_key(record.ceremony_id)
        return jsonify(
            {
                "ceremony_id": record.ceremony_id,
                "election_id": record.election_id,
                "threshold": record.threshold,
                "total_shares": record.total_shares,
                "public_key": encoding.public_key_to_mapping(key),
                "public_key_blob": encoding.encode_public_key(key),
            }
        )

    @app.route("/dkg/threshold-decrypt", methods=["POST"])
    def threshold_decrypt():
        """Check that the supplied shares rebuild the election key."""
        data = request.get_json(silent=True) or {}
        ceremony_id = data.get("ceremony_id")
        shares = _shares_from(data)
        if not isinstance(ceremony_id, str) or shares is None:
            return jsonify({"error": "missing ceremony_id or shares"}), 400
        key = _manager().threshold_decrypt(ceremony_id, shares)
        return jsonify(
            {
                "ceremony_id": ceremony_id,
                "success": True,
                "shareholders_used": list(key.shareholders_used),
                "threshold": key.threshold,
            }
        )

    @app.route("/dkg/finalize", methods=["POST"])
    def finalize():
        data = request.get_json(silent=True) or {}
        ceremony_id = data.get("ceremony_id")
        if not isinstance(ceremony_id, str):
            return jsonify({"error": "missing ceremony_id"}), 400
        return jsonify(_manager().finalize_ceremony(ceremony_id))

    @app.route("/dkg/ceremonies", methods=["GET"])
    def list_ceremonies():
        items = _manager().list_ceremonies()
        return jsonify({"ceremonies": items, "count": len(items)})

    @app.route("/dkg/shards/<election_id>", methods=["GET"])
    def get_shards(election_id):
        return jsonify(_manager().get_shards_by_election_id(election_id))

    @app.route("/dkg/homomorphic-tally", methods=["POST"])
    def homomorphic_tally():
        """Publish the per-candidate encrypted sums without decrypting."""
        data = request.get_json(silent=True) or {}
        ceremony_id = data.get("ceremony_id")
        candidates = _candidates_from(data)
        ballots = data.get("ballots")
        if not isinstance(ceremony_id, str) or candidates is None or not isinstance(ballots, list):
            return jsonify({"error": "missing ceremony_id, candidates or ballots"}), 400
        if not all(isinstance(b, str) for b in ballots):
            return jsonify({"error": "ballots must be strings"}), 400
        public_key = _manager().get_public_key(ceremony_id)
        sums = tally.encrypted_tally(ballots, candidates, public_key)
        return jsonify(
            {
                "ceremony_id": ceremony_id,
                "total_ballots": len(ballots),
                "encrypted_tallies": [
                    {"candidate": name, "c1": format(ct.c1, "x"), "c2": format(ct.c2, "x")}
                    for name, ct in zip(candidates, sums)
                ],
            }
        )

    ## --- encryption / tally ----------------------------------------------

    @app.route("/api/encrypt", methods=["POST"])
    def encrypt():
        """Encrypt a K-slot ballot, or a legacy single-candidate vote."""
        data = request.get_json(silent=True) or {}
        public_key = _public_key_from(data)
        candidates = _candidates_from(data)
        if candidates is not None and "choice" in data:
            try:
                ballot = elgamal.encrypt_single_choice(candidates, data["choice"], public_key)
            except ThresholdVoteError:
                raise
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            return jsonify({"ballot": encoding.encode_packed_ballot(ballot), "slots": len(ballot)})
        candidate = data.get("candidate")
        if isinstance(candidate, str):
            ct = elgamal.encrypt_candidate(candidate, public_key)
            return jsonify({"ciphertext": encoding.ciphertext_to_hex(ct)})
        return jsonify({"error": "expected candidates+choice or candidate"}), 400

    @app.route("/api/decrypt/batch", methods=["POST"])
    def decrypt_batch():
        """Reconstruct the key from shares, tally every ballot and prove the result."""
        data = request.get_json(silent=True) or {}
        ceremony_id = data.get("ceremony_id")
        shares = _shares_from(data)
        candidates = _candidates_from(data)
        ballots = data.get("ballots")
        if (
            not isinstance(ceremony_id, str)
            or shares is None
            or candidates is None
            or not isinstance(ballots, list)
        ):
            return jsonify({"error": "missing ceremony_id, shares, candidates or ballots"}), 400
        if not all(isinstance(b, str) for b in ballots):
            return jsonify({"error": "ballots must be strings"}), 400
        max_count = data.get("max_count", len(ballots))
        if not isinstance(max_count, int) or max_count < 0:
            return jsonify({"error": "max_count must be a non-negative integer"}), 400

        key = _manager().threshold_decrypt(ceremony_id, shares).key_pair
        public_key = key.public_key
        if all(encoding.is_packed_ballot(b) for b in ballots):
            result = tally.tally_packed_ballots(ballots, candidates, key.x, public_key, max_count)
            tally_proofs = proofs.generate_tally_proofs(public_key, key.x, result)
            return jsonify(
                {
                    "ceremony_id": ceremony_id,
                    "mode": "packed",
                    "results": result.as_dict(),
                    "total_ballots": result.ballot_count,
                    "counted_total": result.counted_total,
                    "consistent": result.consistent,
                    "proofs": [tp.to_dict() for tp in tally_proofs],
                    "public_key": encoding.public_key_to_mapping(public_key),
                }
            )
        legacy = tally.tally_legacy_votes(ballots, candidates, key.x, public_key)
        return jsonify(
            {
                "ceremony_id": ceremony_id,
                "mode": "legacy",
                "results": legacy.counts,
                "invalid": legacy.invalid,
                "total_ballots": legacy.total,
            }
        )

    @app.route("/api/decrypt/single", methods=["POST"])
    def decrypt_single():
        data = request.get_json(silent=True) or {}
        ceremony_id = data.get("ceremony_id")
        shares = _shares_from(data)
        candidates = _candidates_from(data)
        ciphertext = data.get("ciphertext")
        if not isinstance(ceremony_id, str) or shares is None or candidates is None or not isinstance(ciphertext, str):
            return jsonify({"error": "missing ceremony_id, shares, candidates or ciphertext"}), 400
        key = _manager().threshold_decrypt(ceremony_id, shares).key_pair
        ct = encoding.check_ciphertext(encoding.ciphertext_from_hex(ciphertext), key.p)
        legacy = tally.tally_legacy_votes([ct], candidates, key.x, key.public_key)
        matched = [name for name, n in legacy.counts.items() if n]
        return jsonify({"candidate": matched[0] if matched else None, "valid": bool(matched)})

    @app.route("/api/threshold/combine-shards", methods=["POST"])
    def combine_shards():
        """Combine loose shards; reports whether they rebuild the given key."""
        data = request.get_json(silent=True) or {}
        shards = data.get("shards")
        threshold = data.get("threshold")
        if not isinstance(shards, list) or not isinstance(threshold, int):
            return jsonify({"error": "missing shards or threshold"}), 400
        if not shards or threshold < 2:
            return jsonify({"error": "need a non-empty shards list and threshold >= 2"}), 400
        x = shamir.combine_shards(shards, threshold)
        fingerprint = hashlib.sha256(bigfield.int_to_fixed_bytes(x, shamir.SECRET_BYTES)).hexdigest()
        body: Dict[str, Any] = {
            "success": True,
            "shards_used": len(shards),
            "threshold": threshold,
            "key_fingerprint": fingerprint,
        }
        if any(k in data for k in ("public_key", "public_key_blob", "public_key_h")):
            pk = _public_key_from(data)
            body["public_key_match"] = pow(pk.g, x, pk.p) == pk.h
        return jsonify(body)

    @app.route("/api/proofs/verify", methods=["POST"])
    def verify_proofs():
        data = request.get_json(silent=True) or {}
        items = data.get("proofs")
        if not isinstance(items, list):
            return jsonify({"error": "missing proofs"}), 400
        public_key = _public_key_from(data)
        try:
            parsed = [proofs.TallyProof.from_dict(item) for item in items]
        except (KeyError, TypeError, ValueError) as e:
            return jsonify({"error": f"malformed proof: {e}"}), 400
        ballots = data.get("ballots")
        if ballots is not None and not (
            isinstance(ballots, list) and all(isinstance(b, str) for b in ballots)
        ):
            return jsonify({"error": "ballots must be a list of strings"}), 400
        result = proofs.verify_tally_proofs(public_key, parsed, ballots)
        return jsonify({"valid": result.valid, "results": result.results})

    return app


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_app(settings)
    app.run(host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
