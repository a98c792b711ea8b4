"""Caption mapping: column analysis, scoring, matching and validation."""

from .models import (
    ColumnType,
    Certainty,
    DateFormat,
    ImportColumn,
    CaptionSlot,
    MatchCandidate,
    ValidationIssue,
    ValidationReport,
    SuggestionOutcome,
    ExportResult,
    SlotNotFoundError,
    ColumnNotFoundError,
    DuplicateCaptionError,
    UnassignedSlotError,
    ExportBlockedError,
)
from .synonyms import AVAILABLE_CAPTIONS, CAPTION_SYNONYMS, default_slots, get_synonyms
from .analyzer import ColumnAnalyzer
from .scoring import normalize_caption, score
from .matcher import MatchingEngine, merge_candidates, resolve_collisions
from .classifier import CertaintyClassifier
from .validator import ValidationEngine

__all__ = [
    "ColumnType",
    "Certainty",
    "DateFormat",
    "ImportColumn",
    "CaptionSlot",
    "MatchCandidate",
    "ValidationIssue",
    "ValidationReport",
    "SuggestionOutcome",
    "ExportResult",
    "SlotNotFoundError",
    "ColumnNotFoundError",
    "DuplicateCaptionError",
    "UnassignedSlotError",
    "ExportBlockedError",
    "AVAILABLE_CAPTIONS",
    "CAPTION_SYNONYMS",
    "default_slots",
    "get_synonyms",
    "ColumnAnalyzer",
    "normalize_caption",
    "score",
    "MatchingEngine",
    "merge_candidates",
    "resolve_collisions",
    "CertaintyClassifier",
    "ValidationEngine",
]
