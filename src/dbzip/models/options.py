"""Backup options passed through to producers."""

from datetime import datetime, timedelta
from pathlib import Path

from pydantic import BaseModel, Field

from ..constants import BACKUP_STATEMENT_TIMEOUT, DEFAULT_EXPIRATION_DAYS


def _default_expiration() -> datetime:
    return datetime.now() + timedelta(days=DEFAULT_EXPIRATION_DAYS)


class BackupOptions(BaseModel):
    """Options understood by every backup producer.

    Attributes:
        transaction_log: Back up the transaction log instead of the full database.
        expiration: Expiry hint recorded with the backup set.
        operation_timeout: Seconds the producer may spend on the backup.
        output_dir: Directory for the artifact; producer default when unset.
    """

    transaction_log: bool = Field(default=False, description="Log backup instead of full")
    expiration: datetime = Field(default_factory=_default_expiration)
    operation_timeout: int = Field(default=BACKUP_STATEMENT_TIMEOUT, gt=0)
    output_dir: Path | None = Field(default=None)
