"""
Backup Export / Import

A backup is one JSON document holding every collection plus the user
preferences and the export timestamp.

DESIGN DECISION: Import is all-or-nothing. The whole document is parsed
and validated with pydantic before anything is applied; a document that
fails to parse changes nothing. A collection present in the document
replaces the current one wholesale (no merge). A collection missing from
the document is left as it is, so partial backups from older versions
still restore what they carry.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from fluxplan.models.audit import utc_now
from fluxplan.models.finance import (
    CardRegistration,
    Category,
    InstallmentPurchase,
    Obligation,
    Transaction,
    UserPreferences,
)


BACKUP_FORMAT_VERSION = 1


class BackupParseError(Exception):
    """The backup document is not valid JSON or does not match the schema."""
    pass


class BackupDocument(BaseModel):
    """Serialized snapshot of the whole planner."""

    format_version: int = Field(default=BACKUP_FORMAT_VERSION)
    exported_at: datetime = Field(default_factory=utc_now)

    transactions: Optional[list[Transaction]] = None
    obligations: Optional[list[Obligation]] = None
    installment_purchases: Optional[list[InstallmentPurchase]] = None
    categories: Optional[list[Category]] = None
    cards: Optional[list[CardRegistration]] = None
    preferences: Optional[UserPreferences] = None

    def counts(self) -> dict[str, int]:
        """Rows per collection carried by this document."""
        return {
            name: len(getattr(self, name))
            for name in (
                "transactions",
                "obligations",
                "installment_purchases",
                "categories",
                "cards",
            )
            if getattr(self, name) is not None
        }


def export_backup(document: BackupDocument) -> str:
    """Render a snapshot as indented JSON."""
    return document.model_dump_json(indent=2)


def parse_backup(raw: str) -> BackupDocument:
    """
    Parse and validate a backup document.

    Raises:
        BackupParseError: Malformed JSON or any record failing validation.
    """
    try:
        return BackupDocument.model_validate_json(raw)
    except ValidationError as e:
        raise BackupParseError(
            f"Backup rejected: {e.error_count()} invalid field(s)"
        ) from e
