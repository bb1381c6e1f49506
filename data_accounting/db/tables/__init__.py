from data_accounting.db.tables.verification import PageVerificationRow
from data_accounting.db.tables.witness import WitnessEventRow, WitnessMerkleTreeRow

__all__ = [
    "PageVerificationRow",
    "WitnessEventRow",
    "WitnessMerkleTreeRow",
]
