"""DKG ceremony state machine.

A ceremony generates an ElGamal key pair, splits the private scalar with
Shamir sharing and walks through

    initialized -> distributed -> verified -> finalized

Every state-mutating call works on a copy of the record, saves the whole
scope through the injected store and only then publishes the copy. If the
save raises, the in-memory record is left exactly as it was.
"""

from __future__ import annotations

import copy
import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from . import bigfield, shamir
from .elgamal import GROUP_14, GroupParams, KeyPair, PublicKey
from .encoding import public_key_to_mapping
from .errors import (
    CeremonyNotFoundError,
    InsufficientSharesError,
    InvalidStateError,
    KeyMismatchError,
    ShareVerificationError,
    UnknownShareholderError,
)
from .storage import CeremonyStore

logger = logging.getLogger(__name__)


class CeremonyStatus(str, Enum):
    INITIALIZED = "initialized"
    DISTRIBUTED = "distributed"
    VERIFIED = "verified"
    FINALIZED = "finalized"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _hex(value: int) -> str:
    return format(value, "x")


@dataclass
class ShareRecord:
    index: int
    value: int
    verification_hash: str
    distributed: bool = False

    def to_share(self) -> shamir.Share:
        return shamir.Share(index=self.index, value=self.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "value": _hex(self.value),
            "verification_hash": self.verification_hash,
            "distributed": self.distributed,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ShareRecord":
        return cls(
            index=int(data["index"]),
            value=int(data["value"], 16),
            verification_hash=data["verification_hash"],
            distributed=bool(data.get("distributed", False)),
        )


@dataclass
class CeremonyRecord:
    """Everything the manager knows about one ceremony

    Attributes
    - public_key: (p, g, h) published once the ceremony is verified
    - private_key: the scalar x, held in memory only until finalize
    - coefficients: sharing polynomial, a0 zeroed at finalize
    - share_distribution: shareholder id -> ShareRecord
    """

    ceremony_id: str
    election_id: str
    threshold: int
    total_shares: int
    public_key: PublicKey
    coefficients: List[int]
    prime: int
    shareholder_ids: List[str]
    share_distribution: Dict[str, ShareRecord]
    status: CeremonyStatus = CeremonyStatus.INITIALIZED
    private_key: Optional[int] = None
    created_at: str = field(default_factory=_now)
    distributed_at: Optional[str] = None
    verified_at: Optional[str] = None
    finalized_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        # private_key is never written out
        return {
            "ceremony_id": self.ceremony_id,
            "election_id": self.election_id,
            "threshold": self.threshold,
            "total_shares": self.total_shares,
            "public_key": public_key_to_mapping(self.public_key),
            "coefficients": [_hex(c) for c in self.coefficients],
            "prime": _hex(self.prime),
            "shareholder_ids": list(self.shareholder_ids),
            "share_distribution": {
                sid: rec.to_dict() for sid, rec in self.share_distribution.items()
            },
            "status": self.status.value,
            "created_at": self.created_at,
            "distributed_at": self.distributed_at,
            "verified_at": self.verified_at,
            "finalized_at": self.finalized_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CeremonyRecord":
        pk = data["public_key"]
        return cls(
            ceremony_id=data["ceremony_id"],
            election_id=data["election_id"],
            threshold=int(data["threshold"]),
            total_shares=int(data["total_shares"]),
            public_key=PublicKey(p=int(pk["p"], 16), g=int(pk["g"], 16), h=int(pk["h"], 16)),
            coefficients=[int(c, 16) for c in data["coefficients"]],
            prime=int(data["prime"], 16),
            shareholder_ids=list(data["shareholder_ids"]),
            share_distribution={
                sid: ShareRecord.from_dict(rec)
                for sid, rec in data["share_distribution"].items()
            },
            status=CeremonyStatus(data["status"]),
            created_at=data["created_at"],
            distributed_at=data.get("distributed_at"),
            verified_at=data.get("verified_at"),
            finalized_at=data.get("finalized_at"),
        )

    def summary(self) -> Dict[str, Any]:
        """Public view: no scalar, no share values, no coefficients."""
        return {
            "ceremony_id": self.ceremony_id,
            "election_id": self.election_id,
            "status": self.status.value,
            "public_key": public_key_to_mapping(self.public_key),
            "threshold": self.threshold,
            "total_shares": self.total_shares,
            "shareholder_count": len(self.shareholder_ids),
            "created_at": self.created_at,
            "distributed_at": self.distributed_at,
            "verified_at": self.verified_at,
            "finalized_at": self.finalized_at,
        }


@dataclass(frozen=True)
class ShareDistribution:
    shareholder_id: str
    index: int
    share: int
    verification_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shareholder_id": self.shareholder_id,
            "share_index": self.index,
            "share": f"0x{self.share:064x}",
            "verification_hash": self.verification_hash,
        }


@dataclass(frozen=True)
class VerificationReport:
    ceremony_id: str
    status: CeremonyStatus
    verified: int
    failed: List[Dict[str, Any]]

    @property
    def all_valid(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ceremony_id": self.ceremony_id,
            "status": self.status.value,
            "all_valid": self.all_valid,
            "verified": self.verified,
            "failed": list(self.failed),
        }


@dataclass(frozen=True)
class ReconstructedKey:
    ceremony_id: str
    key_pair: KeyPair
    shareholders_used: Tuple[str, ...]
    threshold: int


ShareInput = Union[Mapping[str, Union[int, str]], Iterable[Tuple[str, Union[int, str]]]]


def _share_value(raw: Union[int, str]) -> int:
    if isinstance(raw, int):
        return raw
    text = str(raw).strip()
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    try:
        return int(text, 16)
    except ValueError as exc:
        raise ShareVerificationError("share value is not valid hex") from exc


class CeremonyManager:
    """Owns the ceremonies of one storage scope.

    Operations on the same ceremony id are serialized by a per-id lock;
    distinct ids proceed in parallel.
    """

    def __init__(self, store: CeremonyStore, scope: str, params: GroupParams = GROUP_14):
        self.store = store
        self.scope = scope
        self.params = params
        self._records: Dict[str, CeremonyRecord] = {
            cid: CeremonyRecord.from_dict(data) for cid, data in store.load(scope).items()
        }
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._commit_lock = threading.Lock()
        logger.info("loaded %d ceremonies for scope %s", len(self._records), scope)

    ## --- internals --------------------------------------------------------

    def _lock_for(self, ceremony_id: str) -> threading.Lock:
        # locks only exist for known ceremonies
        self._get(ceremony_id)
        with self._registry_lock:
            lock = self._locks.get(ceremony_id)
            if lock is None:
                lock = self._locks[ceremony_id] = threading.Lock()
            return lock

    def _get(self, ceremony_id: str) -> CeremonyRecord:
        record = self._records.get(ceremony_id)
        if record is None:
            raise CeremonyNotFoundError(f"Ceremony not found: {ceremony_id}")
        return record

    def _commit(self, record: CeremonyRecord) -> None:
        with self._commit_lock:
            snapshot = {cid: rec.to_dict() for cid, rec in self._records.items()}
            snapshot[record.ceremony_id] = record.to_dict()
            self.store.save(self.scope, snapshot)
            self._records[record.ceremony_id] = record

    @staticmethod
    def _require(record: CeremonyRecord, *allowed: CeremonyStatus) -> None:
        if record.status not in allowed:
            raise InvalidStateError(
                f"Cannot perform operation in {record.status.value} state "
                f"(requires {', '.join(s.value for s in allowed)})"
            )

    ## --- state transitions ------------------------------------------------

    def setup_ceremony(
        self,
        election_id: str,
        threshold: int,
        total_shares: int,
        shareholder_ids: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """Generate a key pair and split its scalar into `total_shares` shares."""
        shamir.validate_threshold(threshold, total_shares)
        ids = list(shareholder_ids or [])
        if len(ids) > total_shares:
            raise ValueError(f"{len(ids)} shareholder ids for {total_shares} shares")
        ids += [f"shareholder_{i}" for i in range(len(ids) + 1, total_shares + 1)]
        if len(set(ids)) != len(ids):
            raise ValueError("shareholder ids must be unique")

        prime = shamir.SHAMIR_PRIME
        x = bigfield.random_field_element(2, prime - 1)
        h = bigfield.mod_pow(self.params.g, x, self.params.p, secret=True)
        share_set = shamir.generate_shares(
            bigfield.int_to_fixed_bytes(x, shamir.SECRET_BYTES), threshold, total_shares, prime
        )
        distribution = {
            sid: ShareRecord(
                index=share.index,
                value=share.value,
                verification_hash=shamir.verification_hash(share),
            )
            for sid, share in zip(ids, share_set.shares)
        }
        ceremony_id = "cer_" + secrets.token_hex(8)
        record = CeremonyRecord(
            ceremony_id=ceremony_id,
            election_id=str(election_id),
            threshold=threshold,
            total_shares=total_shares,
            public_key=PublicKey(p=self.params.p, g=self.params.g, h=h),
            coefficients=list(share_set.coefficients),
            prime=prime,
            shareholder_ids=ids,
            share_distribution=distribution,
            private_key=x,
        )
        # unreachable by other callers until committed
        self._commit(record)
        logger.info(
            "ceremony %s set up for election %s (%d of %d)",
            ceremony_id, election_id, threshold, total_shares,
        )
        return record.summary()

    def distribute_shares(self, ceremony_id: str) -> List[ShareDistribution]:
        """Hand each shareholder its own share; initialized -> distributed."""
        with self._lock_for(ceremony_id):
            record = copy.deepcopy(self._get(ceremony_id))
            self._require(record, CeremonyStatus.INITIALIZED)
            out = []
            for sid in record.shareholder_ids:
                rec = record.share_distribution[sid]
                rec.distributed = True
                out.append(
                    ShareDistribution(
                        shareholder_id=sid,
                        index=rec.index,
                        share=rec.value,
                        verification_hash=rec.verification_hash,
                    )
                )
            record.status = CeremonyStatus.DISTRIBUTED
            record.distributed_at = _now()
            self._commit(record)
        logger.info("ceremony %s distributed %d shares", ceremony_id, len(out))
        return out

    def verify_all_shares(self, ceremony_id: str) -> VerificationReport:
        """Check every share against the polynomial; distributed -> verified if all pass."""
        with self._lock_for(ceremony_id):
            record = copy.deepcopy(self._get(ceremony_id))
            self._require(record, CeremonyStatus.DISTRIBUTED)
            failed = []
            for sid in record.shareholder_ids:
                rec = record.share_distribution[sid]
                share = rec.to_share()
                ok = shamir.verify_share(share, record.coefficients, record.prime)
                ok = ok and shamir.verification_hash(share) == rec.verification_hash
                if not ok:
                    failed.append({"shareholder_id": sid, "index": rec.index})
            if failed:
                logger.warning(
                    "ceremony %s: %d share(s) failed verification", ceremony_id, len(failed)
                )
            else:
                record.status = CeremonyStatus.VERIFIED
                record.verified_at = _now()
                self._commit(record)
                logger.info("ceremony %s verified", ceremony_id)
        return VerificationReport(
            ceremony_id=ceremony_id,
            status=record.status,
            verified=len(record.shareholder_ids) - len(failed),
            failed=failed,
        )

    def finalize_ceremony(self, ceremony_id: str) -> Dict[str, Any]:
        """Drop the retained scalar and a0; verified -> finalized."""
        with self._lock_for(ceremony_id):
            record = copy.deepcopy(self._get(ceremony_id))
            self._require(record, CeremonyStatus.VERIFIED)
            record.private_key = None
            if record.coefficients:
                record.coefficients[0] = 0
            record.status = CeremonyStatus.FINALIZED
            record.finalized_at = _now()
            self._commit(record)
        logger.info("ceremony %s finalized", ceremony_id)
        return record.summary()

    ## --- reconstruction ---------------------------------------------------

    def threshold_decrypt(self, ceremony_id: str, shareholder_shares: ShareInput) -> ReconstructedKey:
        """Rebuild the private scalar from at least t shareholder shares.

        `shareholder_shares` maps shareholder id to share value (int or hex),
        or is an iterable of such pairs. Each value must match the hash
        recorded at setup, and the result must reproduce the public key.
        """
        record = self._get(ceremony_id)
        pairs = list(
            shareholder_shares.items()
            if isinstance(shareholder_shares, Mapping)
            else shareholder_shares
        )
        if len(pairs) < record.threshold:
            raise InsufficientSharesError(
                f"Need at least {record.threshold} shares to decrypt, got {len(pairs)}"
            )

        shares = []
        used = []
        for sid, raw in pairs:
            rec = record.share_distribution.get(sid)
            if rec is None:
                raise UnknownShareholderError(f"Unknown shareholder: {sid}")
            share = shamir.Share(index=rec.index, value=_share_value(raw))
            if shamir.verification_hash(share) != rec.verification_hash:
                logger.warning("ceremony %s: share from %s failed hash check", ceremony_id, sid)
                raise ShareVerificationError(f"share from {sid} does not match its commitment")
            shares.append(share)
            used.append(sid)

        x = bigfield.bytes_to_int(shamir.reconstruct_secret(shares, record.threshold, record.prime))
        pk = record.public_key
        if bigfield.mod_pow(pk.g, x, pk.p, secret=True) != pk.h:
            logger.error("ceremony %s: reconstructed scalar does not match public key", ceremony_id)
            raise KeyMismatchError("Reconstructed private key does not match public key")
        logger.info("ceremony %s: key reconstructed from %d shares", ceremony_id, len(used))
        return ReconstructedKey(
            ceremony_id=ceremony_id,
            key_pair=KeyPair(p=pk.p, g=pk.g, h=pk.h, x=x),
            shareholders_used=tuple(used),
            threshold=record.threshold,
        )

    ## --- queries ----------------------------------------------------------

    def get_ceremony(self, ceremony_id: str) -> Dict[str, Any]:
        return self._get(ceremony_id).summary()

    def get_public_key(self, ceremony_id: str) -> PublicKey:
        """The election key, only once the shares have been verified."""
        record = self._get(ceremony_id)
        self._require(record, CeremonyStatus.VERIFIED, CeremonyStatus.FINALIZED)
        return record.public_key

    def find_by_election(self, election_id: str) -> CeremonyRecord:
        """Most recently created ceremony for `election_id`."""
        matches = [r for r in self._records.values() if r.election_id == str(election_id)]
        if not matches:
            raise CeremonyNotFoundError(f"No ceremony for election: {election_id}")
        return max(matches, key=lambda r: r.created_at)

    def list_ceremonies(self) -> List[Dict[str, Any]]:
        return [
            {
                "ceremony_id": r.ceremony_id,
                "election_id": r.election_id,
                "status": r.status.value,
                "threshold": r.threshold,
                "total_shares": r.total_shares,
                "created_at": r.created_at,
            }
            for r in sorted(self._records.values(), key=lambda r: r.created_at)
        ]

    def get_shards_by_election_id(self, election_id: str) -> Dict[str, Any]:
        """Release every shard of the election's ceremony for combination."""
        record = self.find_by_election(election_id)
        return {
            "ceremony_id": record.ceremony_id,
            "election_id": record.election_id,
            "threshold": record.threshold,
            "total_shares": record.total_shares,
            "prime": _hex(record.prime),
            "public_key": public_key_to_mapping(record.public_key),
            "status": record.status.value,
            "shards": [
                {
                    "shareholder_id": sid,
                    "share_index": rec.index,
                    "share": f"0x{rec.value:064x}",
                    "verification_hash": rec.verification_hash,
                }
                for sid, rec in record.share_distribution.items()
            ],
        }
