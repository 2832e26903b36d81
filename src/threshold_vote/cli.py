"""Small CLI for driving a running threshold_vote server.

Usage examples:
    threshold-vote setup --election-id 42 --threshold 3 --shares 5
    threshold-vote distribute --ceremony-id cer_0123abcd
    threshold-vote verify-shares --ceremony-id cer_0123abcd
    threshold-vote public-key --election-id 42
    threshold-vote finalize --ceremony-id cer_0123abcd
    threshold-vote ceremonies
"""

import argparse
import json
import logging
import sys

import requests

from .config import Settings, configure_logging

logger = logging.getLogger(__name__)

TIMEOUT = 10


def _show(r: requests.Response) -> int:
    try:
        body = r.json()
    except ValueError:
        body = {"status_code": r.status_code, "text": r.text}
    print(json.dumps(body, indent=2))
    return 0 if r.ok else 1


def setup(base: str, election_id: str, threshold: int, shares: int, shareholders=None) -> int:
    payload = {"election_id": election_id, "threshold": threshold, "total_shares": shares}
    if shareholders:
        payload["shareholder_ids"] = shareholders
    return _show(requests.post(f"{base}/dkg/setup", json=payload, timeout=TIMEOUT))


def distribute(base: str, ceremony_id: str) -> int:
    r = requests.post(f"{base}/dkg/distribute-shares", json={"ceremony_id": ceremony_id}, timeout=TIMEOUT)
    return _show(r)


def verify_shares(base: str, ceremony_id: str) -> int:
    r = requests.post(f"{base}/dkg/verify-shares", json={"ceremony_id": ceremony_id}, timeout=TIMEOUT)
    return _show(r)


def public_key(base: str, election_id: str) -> int:
    return _show(requests.get(f"{base}/dkg/public-key/{election_id}", timeout=TIMEOUT))


def finalize(base: str, ceremony_id: str) -> int:
    r = requests.post(f"{base}/dkg/finalize", json={"ceremony_id": ceremony_id}, timeout=TIMEOUT)
    return _show(r)


def ceremonies(base: str) -> int:
    return _show(requests.get(f"{base}/dkg/ceremonies", timeout=TIMEOUT))


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="threshold-vote")
    p.add_argument("--server", default=settings.server_url, help="server base URL")
    sub = p.add_subparsers(dest="cmd")
    s = sub.add_parser("setup")
    s.add_argument("--election-id", required=True)
    s.add_argument("--threshold", type=int, default=settings.default_threshold)
    s.add_argument("--shares", type=int, default=settings.default_shares)
    s.add_argument("--shareholder", action="append", dest="shareholders")
    for name in ("distribute", "verify-shares", "finalize"):
        c = sub.add_parser(name)
        c.add_argument("--ceremony-id", required=True)
    k = sub.add_parser("public-key")
    k.add_argument("--election-id", required=True)
    sub.add_parser("ceremonies")
    return p


def main(argv=None) -> int:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    p = build_parser(settings)
    args = p.parse_args(argv)
    base = args.server.rstrip("/")
    try:
        if args.cmd == "setup":
            return setup(base, args.election_id, args.threshold, args.shares, args.shareholders)
        elif args.cmd == "distribute":
            return distribute(base, args.ceremony_id)
        elif args.cmd == "verify-shares":
            return verify_shares(base, args.ceremony_id)
        elif args.cmd == "public-key":
            return public_key(base, args.election_id)
        elif args.cmd == "finalize":
            return finalize(base, args.ceremony_id)
        elif args.cmd == "ceremonies":
            return ceremonies(base)
    except requests.RequestException as e:
        logger.error("request to %s failed: %s", base, e)
        return 2
    p.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
