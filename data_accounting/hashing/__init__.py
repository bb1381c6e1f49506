"""Hash composition for page verification records."""
from data_accounting.hashing.hasher import (
    DEFAULT_HASH_ALGORITHM,
    HashComposer,
    get_hash_sum,
    hash_concat,
    make_empty_if_nonce,
)

__all__ = [
    "DEFAULT_HASH_ALGORITHM",
    "HashComposer",
    "get_hash_sum",
    "hash_concat",
    "make_empty_if_nonce",
]
