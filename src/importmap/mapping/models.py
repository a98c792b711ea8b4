"""Data models for caption mapping."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ColumnType(str, Enum):
    """Inferred type of an import column."""

    NUMBER = "number"
    EMAIL = "email"
    DATE = "date"
    TEXT = "text"


class Certainty(str, Enum):
    """Whether a candidate can be applied without confirmation."""

    CERTAIN = "certain"  # Auto-applied and confirmed
    UNCERTAIN = "uncertain"  # Shown as a suggestion, needs confirmation


class DateFormat(str, Enum):
    """Date formats accepted for the Start Date caption."""

    DMY = "DD/MM/YYYY"
    MDY = "MM/DD/YYYY"
    ISO = "YYYY-MM-DD"


class ImportColumn(BaseModel):
    """A column of the uploaded file, built once per parse."""

    model_config = ConfigDict(frozen=True)

    name: str
    index: int  # Stable 0-based position
    sample: tuple[str, ...] = ()  # First 3 non-empty values
    type: ColumnType = ColumnType.TEXT


class CaptionSlot(BaseModel):
    """A target caption and the column currently assigned to it."""

    id: str
    caption: str
    order: int
    column: Optional[str] = None  # None means unassigned
    sample: Optional[str] = None
    confidence: Optional[float] = None
    suggested: bool = False
    confirmed: bool = False
    key_field: bool = False
    match_by_id: bool = False

    @property
    def is_assigned(self) -> bool:
        return self.column is not None

    @property
    def has_caption(self) -> bool:
        return bool(self.caption.strip())


class MatchCandidate(BaseModel):
    """A proposed column to caption assignment.

    Field aliases follow the suggestion provider's JSON contract.
    """

    model_config = ConfigDict(populate_by_name=True)

    csv_column: str = Field(alias="csvColumn")
    target_caption: str = Field(alias="targetCaption")
    confidence: float = Field(ge=0.0, le=1.0)

    @property
    def key(self) -> str:
        return f"{self.csv_column}::{self.target_caption}"


class ValidationIssue(BaseModel):
    """Values of one caption that failed its format check."""

    caption: str
    rule: str
    count: int
    rows: list[int] = Field(default_factory=list)  # 1-based file row numbers
    values: list[str] = Field(default_factory=list)

    @property
    def samples(self) -> list[tuple[int, str]]:
        return list(zip(self.rows, self.values))


class ValidationReport(BaseModel):
    """Outcome of a validation pass over all mapped captions."""

    issues: list[ValidationIssue] = Field(default_factory=list)
    summary: str

    @property
    def has_issues(self) -> bool:
        return len(self.issues) > 0


class SuggestionOutcome(BaseModel):
    """Result of one suggestion cycle."""

    certain: list[MatchCandidate] = Field(default_factory=list)
    uncertain: list[MatchCandidate] = Field(default_factory=list)
    source: str = "local"  # "local", "remote" or "remote+local"
    summary: str = ""
    content: Optional[str] = None  # Provider text, for message requests


class ExportResult(BaseModel):
    """A generated output document."""

    content: str
    file_name: str
    header: list[str]
    row_count: int


class SlotNotFoundError(Exception):
    """Exception raised when a caption slot id or caption is unknown."""

    pass


class ColumnNotFoundError(Exception):
    """Exception raised when a column name is not part of the current file."""

    pass


class DuplicateCaptionError(Exception):
    """Exception raised when a caption would appear on two slots."""

    def __init__(self, caption: str):
        self.caption = caption
        super().__init__(f"Caption '{caption}' is already used by another slot")


class UnassignedSlotError(Exception):
    """Exception raised when confirming a slot that has no column."""

    pass


class ExportBlockedError(Exception):
    """Exception raised when export is requested before every caption is confirmed."""

    def __init__(self, confirmed: int, total: int):
        self.confirmed = confirmed
        self.total = total
        if confirmed == 0:
            message = (
                "There are no confirmed mappings to export yet. "
                "Confirm at least one caption-to-column mapping."
            )
        else:
            message = (
                f"Not all captions are confirmed ({confirmed}/{total}). "
                "Please confirm the remaining suggestions before generating the CSV."
            )
        self.message = message
        super().__init__(message)
