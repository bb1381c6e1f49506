from data_accounting.schemas.payload_contracts import (
    ExportBundle,
    MerkleProofPair,
    PagePayload,
    VerificationPayload,
    WitnessPayload,
)

__all__ = [
    "ExportBundle",
    "MerkleProofPair",
    "PagePayload",
    "VerificationPayload",
    "WitnessPayload",
]
