"""Write-side input validation."""

from ledgerflow.validation.validator import (
    BILL_EDITABLE_FIELDS,
    EDITABLE_FIELDS,
    RecordValidator,
)

__all__ = ["BILL_EDITABLE_FIELDS", "EDITABLE_FIELDS", "RecordValidator"]
