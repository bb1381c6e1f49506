"""Per-revision verification rows."""
from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


class PageVerificationRow(SQLModel, table=True):
    """One row per revision. Created as a placeholder, finalized in place."""
    __tablename__ = "page_verification"

    page_verification_id: Optional[int] = Field(default=None, primary_key=True)
    domain_id: str = Field(default="")
    page_title: str = Field(default="", index=True)
    page_id: int = Field(default=0, index=True)
    rev_id: int = Field(index=True)
    time_stamp: str = Field(default="")
    hash_content: str = Field(default="")
    hash_metadata: str = Field(default="")
    hash_verification: str = Field(default="", index=True)
    signature: str = Field(default="")
    public_key: str = Field(default="")
    wallet_address: str = Field(default="")
    witness_event_id: Optional[int] = Field(default=None, index=True)
    source: str = Field(default="default")
