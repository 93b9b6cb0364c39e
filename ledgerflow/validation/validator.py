"""
Two-Stage Input Validation

DESIGN DECISION: Write-side input is checked in two distinct stages.

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (name, amount)
- Type/format checks (finite non-negative amount, parsable date)
- Field whitelist for updates (kind, owner_id and id are immutable)
- Failures here are errors; nothing is written

STAGE 2 - SEMANTIC VALIDATION:
- Absurd amount detection
- Far-future date detection
- Failures here are warnings only; they never block the write

IMPORTANT: Validation NEVER silently fixes issues beyond whitespace
stripping and filling defaults (date = now, bill recurrence = once).
The cleaned values are returned in `ValidationResult.values`.
"""

from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from ledgerflow.config import LedgerSettings, get_settings
from ledgerflow.models.ledger import ValidationIssue, ValidationResult
from ledgerflow.models.record import Recurrence, RecordKind, parse_amount, parse_moment


# Fields a user may change after creation
EDITABLE_FIELDS = frozenset({"name", "amount", "notes", "company", "date"})
BILL_EDITABLE_FIELDS = EDITABLE_FIELDS | {"recurrence"}

IMMUTABLE_FIELDS = frozenset({"id", "kind", "owner_id", "created_at"})


def _editable_fields(kind: RecordKind) -> frozenset:
    return BILL_EDITABLE_FIELDS if kind == RecordKind.BILL else EDITABLE_FIELDS


class RecordValidator:
    """
    Validates create/update input for ledger records.

    Stage 1: Schema validation (errors block the write)
    Stage 2: Semantic validation (warnings only)
    """

    def __init__(
        self,
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize validator.

        Args:
            settings: Thresholds for the semantic warnings. Defaults to the
                      application settings.
            clock: Source of "now" for default dates and future checks.
        """
        self._settings = settings or get_settings().ledger
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # -------------------------------------------------------------------------
    # Field checks
    # -------------------------------------------------------------------------

    def _check_name(self, value: Any, issues: list[ValidationIssue]) -> Optional[str]:
        name = "" if value is None else str(value).strip()
        if not name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Name is required",
                severity="error",
                suggested_fix="Enter a short label, e.g. 'Salary' or 'Groceries'",
            ))
            return None
        return name

    def _check_amount(self, value: Any, issues: list[ValidationIssue]) -> Optional[Decimal]:
        if value is None or (isinstance(value, str) and not value.strip()):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
            return None

        amount = parse_amount(value)
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Amount must be a finite, non-negative number (got {value!r})",
                severity="error",
                suggested_fix="Enter a number such as 12.50",
            ))
        return amount

    def _check_date(self, value: Any, issues: list[ValidationIssue]) -> Optional[datetime]:
        moment = parse_moment(value)
        if moment is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_value",
                message=f"Date could not be understood (got {value!r})",
                severity="error",
                suggested_fix="Use an ISO date such as 2024-06-03",
            ))
        return moment

    def _check_recurrence(self, value: Any, issues: list[ValidationIssue]) -> Optional[Recurrence]:
        try:
            return Recurrence(value)
        except ValueError:
            allowed = ", ".join(r.value for r in Recurrence)
            issues.append(ValidationIssue(
                field="recurrence",
                issue_type="invalid_value",
                message=f"Unknown recurrence {value!r}",
                severity="error",
                suggested_fix=f"Use one of: {allowed}",
            ))
            return None

    @staticmethod
    def _clean_text(value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    # -------------------------------------------------------------------------
    # Stage 2
    # -------------------------------------------------------------------------

    def _validate_semantic(self, values: Mapping[str, Any]) -> list[ValidationIssue]:
        issues = []

        amount = values.get("amount")
        max_amount = Decimal(str(self._settings.max_reasonable_amount))
        if amount is not None and amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        moment = values.get("date")
        tolerance = timedelta(days=self._settings.future_date_tolerance_days)
        if moment is not None and moment > self._clock() + tolerance:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({moment.date()}) is far in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        return issues

    def _result(
        self,
        kind: RecordKind,
        issues: list[ValidationIssue],
        values: dict[str, Any],
    ) -> ValidationResult:
        is_valid = not any(issue.severity == "error" for issue in issues)
        if is_valid:
            issues = issues + self._validate_semantic(values)
        return ValidationResult(
            kind=kind,
            is_valid=is_valid,
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
            values=values if is_valid else {},
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def validate_new(self, kind: RecordKind, fields: Mapping[str, Any]) -> ValidationResult:
        """
        Validate the fields of a record about to be created.

        Returns:
            ValidationResult whose `values` are ready to insert
        """
        issues: list[ValidationIssue] = []
        values: dict[str, Any] = {}

        for key in fields:
            if key in IMMUTABLE_FIELDS:
                issues.append(ValidationIssue(
                    field=key,
                    issue_type="immutable",
                    message=f"'{key}' is assigned by the ledger and cannot be supplied",
                    severity="error",
                ))

        values["name"] = self._check_name(fields.get("name"), issues)
        values["amount"] = self._check_amount(fields.get("amount"), issues)

        if fields.get("date") is None:
            values["date"] = self._clock()
        else:
            values["date"] = self._check_date(fields["date"], issues)

        for key in ("notes", "company"):
            text = self._clean_text(fields.get(key))
            if text is not None:
                values[key] = text

        if kind == RecordKind.BILL:
            values["recurrence"] = self._check_recurrence(
                fields.get("recurrence") or Recurrence.ONCE.value, issues
            )
            group = self._clean_text(fields.get("recurrence_group_id"))
            if group is not None:
                values["recurrence_group_id"] = group

        return self._result(kind, issues, values)

    def validate_changes(self, kind: RecordKind, fields: Mapping[str, Any]) -> ValidationResult:
        """
        Validate a partial update.

        Absent and None fields are left out of `values`, so they are never
        overwritten.
        """
        issues: list[ValidationIssue] = []
        values: dict[str, Any] = {}
        allowed = _editable_fields(kind)

        for key, value in fields.items():
            if key in IMMUTABLE_FIELDS:
                issues.append(ValidationIssue(
                    field=key,
                    issue_type="immutable",
                    message=f"'{key}' cannot be changed after creation",
                    severity="error",
                ))
                continue
            if key not in allowed:
                issues.append(ValidationIssue(
                    field=key,
                    issue_type="unknown_field",
                    message=f"'{key}' is not an editable {kind.value} field",
                    severity="error",
                ))
                continue
            if value is None:
                continue

            if key == "name":
                values[key] = self._check_name(value, issues)
            elif key == "amount":
                values[key] = self._check_amount(value, issues)
            elif key == "date":
                values[key] = self._check_date(value, issues)
            elif key == "recurrence":
                values[key] = self._check_recurrence(value, issues)
            else:
                # Notes/company may be cleared with an empty string
                values[key] = self._clean_text(value) or ""

        return self._result(kind, issues, values)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []

        if not result.is_valid:
            lines.append("❌ Some information needs fixing:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
