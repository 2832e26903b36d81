"""Runtime settings and logging setup.

Settings come from THRESHOLD_VOTE_* environment variables with the
defaults below.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

ENV_PREFIX = "THRESHOLD_VOTE_"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass
class Settings:
    """Configuration shared by the server, CLI and demo

    Attributes
    - data_dir: root directory for JSON ceremony storage; None keeps state in memory
    - scope: storage scope (e.g. an election contract address)
    - log_level: logging level name
    - default_threshold / default_shares: used when a setup request omits them
    - host / port: where the HTTP adapter listens
    - server_url: base URL the CLI talks to
    """

    data_dir: Optional[str] = None
    scope: str = "default"
    log_level: str = "INFO"
    default_threshold: int = 3
    default_shares: int = 5
    host: str = "127.0.0.1"
    port: int = 5000
    server_url: str = "http://127.0.0.1:5000"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        def get(name: str, default):
            return env.get(ENV_PREFIX + name, default)

        return cls(
            data_dir=get("DATA_DIR", None) or None,
            scope=get("SCOPE", cls.scope),
            log_level=get("LOG_LEVEL", cls.log_level).upper(),
            default_threshold=int(get("THRESHOLD", cls.default_threshold)),
            default_shares=int(get("SHARES", cls.default_shares)),
            host=get("HOST", cls.host),
            port=int(get("PORT", cls.port)),
            server_url=get("SERVER_URL", cls.server_url).rstrip("/"),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
