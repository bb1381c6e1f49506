from __future__ import annotations

from dataclasses import dataclass
import hashlib
import os

from data_accounting.hashing.hasher import DEFAULT_HASH_ALGORITHM


@dataclass(frozen=True)
class RuntimeSettings:
    domain_id: str
    hash_algorithm: str
    log_level: str

    def __post_init__(self) -> None:
        if self.hash_algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported DATA_ACCOUNTING_HASH_ALGORITHM: {self.hash_algorithm!r}")

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            domain_id=os.getenv("DATA_ACCOUNTING_DOMAIN_ID", "localhost"),
            hash_algorithm=os.getenv("DATA_ACCOUNTING_HASH_ALGORITHM", DEFAULT_HASH_ALGORITHM),
            log_level=os.getenv("DATA_ACCOUNTING_LOG_LEVEL", "INFO").upper(),
        )
