"""Format checks over values mapped to captions."""

import logging
import re
from typing import Callable, Optional, Sequence, Union

from .models import (
    CaptionSlot,
    DateFormat,
    ImportColumn,
    ValidationIssue,
    ValidationReport,
)

logger = logging.getLogger(__name__)

MAX_SAMPLES = 5

EMAIL_RE = re.compile(r"^\S+@\S+$")
EMPLOYEE_ID_RE = re.compile(r"^[0-9A-Za-z][0-9A-Za-z\-_.]*$")
SLASH_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

Check = Callable[[str], bool]


def _is_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value))


def _is_phone(value: str) -> bool:
    return len(re.sub(r"\D", "", value)) >= 7


def _is_employee_id(value: str) -> bool:
    return bool(EMPLOYEE_ID_RE.match(value))


def _is_present(value: str) -> bool:
    return len(value.strip()) > 0


CAPTION_VALIDATORS: dict[str, Check] = {
    "Email": _is_email,
    "Phone": _is_phone,
    "Employee ID": _is_employee_id,
    "Reference": _is_present,
    "Username": _is_present,
}

DATE_VALIDATORS: dict[DateFormat, Check] = {
    DateFormat.DMY: lambda v: bool(SLASH_DATE_RE.match(v)),
    DateFormat.MDY: lambda v: bool(SLASH_DATE_RE.match(v)),
    DateFormat.ISO: lambda v: bool(ISO_DATE_RE.match(v)),
}

DATE_CAPTION = "Start Date"


def summarize(issues: Sequence[ValidationIssue]) -> str:
    """Human-readable one-line summary of a validation pass."""
    if not issues:
        return "No validation issues found in the mapped columns."
    flagged = sum(issue.count for issue in issues)
    return (
        f"Found {len(issues)} validation issue(s) affecting {flagged} value(s)."
    )


class ValidationEngine:
    """Runs per-caption format checks over mapped column values."""

    def __init__(self, date_format: Union[DateFormat, str] = DateFormat.DMY):
        self.date_format = DateFormat(date_format)

    def rule_for(self, caption: str) -> Optional[tuple[Check, str]]:
        """Return (check, rule description) for a caption, or None if unchecked."""
        if caption == DATE_CAPTION:
            return DATE_VALIDATORS[self.date_format], f"Expected date format {self.date_format.value}"
        check = CAPTION_VALIDATORS.get(caption)
        if check is None:
            return None
        return check, f"Invalid {caption.lower()}"

    def validate_caption(
        self,
        caption: str,
        column_index: int,
        rows: Sequence[Sequence[str]],
        has_header: bool = True,
    ) -> Optional[ValidationIssue]:
        """
        Check every data row's value for one caption.

        Empty values are always valid. Row numbers are 1-based file rows,
        so they are offset by one when a header row is present.

        Returns:
            A ValidationIssue when at least one value fails, else None
        """
        rule = self.rule_for(caption)
        if rule is None:
            return None
        check, description = rule

        data_rows = rows[1:] if has_header else rows
        offset = 1 + (1 if has_header else 0)

        count = 0
        bad_rows: list[int] = []
        bad_values: list[str] = []
        for r, row in enumerate(data_rows):
            value = (row[column_index] if column_index < len(row) else "").strip()
            if value == "":
                continue
            if not check(value):
                count += 1
                if len(bad_rows) < MAX_SAMPLES:
                    bad_rows.append(r + offset)
                    bad_values.append(value)

        if count == 0:
            return None
        return ValidationIssue(
            caption=caption, rule=description, count=count, rows=bad_rows, values=bad_values
        )

    def validate(
        self,
        rows: Sequence[Sequence[str]],
        slots: Sequence[CaptionSlot],
        columns: Sequence[ImportColumn],
        has_header: bool = True,
    ) -> ValidationReport:
        """
        Validate every confirmed, assigned slot in display order.

        Informational only: the report never blocks export.
        """
        index_by_name = {column.name: column.index for column in columns}
        issues = []

        for slot in sorted(slots, key=lambda s: s.order):
            if not slot.has_caption or not slot.confirmed or slot.column is None:
                continue
            column_index = index_by_name.get(slot.column)
            if column_index is None:
                continue
            issue = self.validate_caption(slot.caption, column_index, rows, has_header)
            if issue is not None:
                issues.append(issue)

        report = ValidationReport(issues=issues, summary=summarize(issues))
        logger.info(report.summary)
        return report
