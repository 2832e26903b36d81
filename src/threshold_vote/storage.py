"""Ceremony persistence.

A store maps an opaque scope (an election contract address, say) to the
JSON-ready dicts of every ceremony in that scope. `save` must be durable
before it returns; `CeremonyManager` treats an exception from it as the
operation never having happened.
"""

import copy
import json
import logging
import os
import re
import shutil
import tempfile
import threading
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

Records = Dict[str, Dict[str, Any]]


class CeremonyStore:
    """Interface implemented by the concrete stores below."""

    def load(self, scope: str) -> Records:
        raise NotImplementedError

    def save(self, scope: str, records: Records) -> None:
        raise NotImplementedError


class InMemoryCeremonyStore(CeremonyStore):
    def __init__(self):
        self._data: Dict[str, Records] = {}
        self._lock = threading.Lock()

    def load(self, scope: str) -> Records:
        with self._lock:
            return copy.deepcopy(self._data.get(scope, {}))

    def save(self, scope: str, records: Records) -> None:
        with self._lock:
            self._data[scope] = copy.deepcopy(records)


_UNSAFE = re.compile(r"[^a-z0-9_-]")


def sanitize_scope(scope: str) -> str:
    """Lower-case the scope and replace anything outside [a-z0-9_-]."""
    cleaned = _UNSAFE.sub("_", str(scope).lower())
    if not cleaned.strip("_"):
        raise ValueError(f"unusable storage scope {scope!r}")
    return cleaned


class JsonFileCeremonyStore(CeremonyStore):
    """One `<base_dir>/<scope>/ceremonies.json` per scope."""

    FILENAME = "ceremonies.json"

    def __init__(self, base_dir: str):
        self.base_dir = os.path.abspath(base_dir)
        self._lock = threading.Lock()

    def _path(self, scope: str) -> str:
        return os.path.join(self.base_dir, sanitize_scope(scope), self.FILENAME)

    def load(self, scope: str) -> Records:
        path = self._path(scope)
        if not os.path.exists(path):
            return {}
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        logger.debug("loaded %d ceremonies from %s", len(data), path)
        return data

    def save(self, scope: str, records: Records) -> None:
        path = self._path(scope)
        directory = os.path.dirname(path)
        with self._lock:
            os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=directory, prefix=".ceremonies-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(records, fh, indent=2, sort_keys=True)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        logger.debug("saved %d ceremonies to %s", len(records), path)

    def list_scopes(self) -> List[str]:
        if not os.path.isdir(self.base_dir):
            return []
        return sorted(
            name
            for name in os.listdir(self.base_dir)
            if os.path.isfile(os.path.join(self.base_dir, name, self.FILENAME))
        )

    def wipe(self, scope: str) -> None:
        directory = os.path.dirname(self._path(scope))
        if os.path.isdir(directory):
            shutil.rmtree(directory)
            logger.info("wiped ceremony storage for %s", scope)
