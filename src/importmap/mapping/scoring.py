"""Confidence scoring between import columns and captions."""

import re
from typing import Mapping, Optional, Sequence

from .models import ColumnType
from .synonyms import get_synonyms

EXACT_SCORE = 1.0
CONTAINMENT_SCORE = 0.9
SYNONYM_EXACT_SCORE = 0.98
SYNONYM_CONTAINMENT_SCORE = 0.92
JACCARD_WEIGHT = 0.6

_PAREN_RE = re.compile(r"\([^)]*\)")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_SPACE_RE = re.compile(r"\s+")

ID_PATTERN = re.compile(r"(^|\s)(id|code|number|no)($|\s)")
DEPARTMENT_PATTERN = re.compile(r"\bdept\b|department")
ORG_PATTERN = re.compile(r"org|organisation|organization|business unit|division")

# (column name pattern, caption, additive weight)
NAME_BOOSTS: tuple[tuple[re.Pattern, str, float], ...] = (
    (ID_PATTERN, "Employee ID", 0.25),
    (ID_PATTERN, "Reference", 0.15),
    (DEPARTMENT_PATTERN, "Department", 0.25),
    (DEPARTMENT_PATTERN, "Org Unit", -0.05),
    (ORG_PATTERN, "Org Unit", 0.2),
)

# Inferred column type -> caption -> share of the remaining gap to 1.0
TYPE_BOOSTS: dict[ColumnType, dict[str, float]] = {
    ColumnType.EMAIL: {"Email": 0.3, "Username": 0.1},
    ColumnType.DATE: {"Start Date": 0.3},
    ColumnType.NUMBER: {"Employee ID": 0.15, "Reference": 0.1},
}


def normalize_caption(text: str) -> str:
    """
    Normalize a column name or caption for comparison.

    Lowercases, drops parenthetical groups such as "(s)", turns every run of
    non-alphanumerics into a single space and trims.
    """
    s = _PAREN_RE.sub(" ", text.lower())
    s = _NON_ALNUM_RE.sub(" ", s)
    return _SPACE_RE.sub(" ", s).strip()


def token_jaccard(a: str, b: str) -> float:
    """Jaccard similarity of the whitespace-split token sets of two normalized strings."""
    ta = set(a.split()) if a else set()
    tb = set(b.split()) if b else set()
    union = ta | tb
    if not union:
        return 0.0
    return len(ta & tb) / len(union)


def _contains(a: str, b: str) -> bool:
    return a in b or b in a


def name_similarity(
    column_name: str,
    caption: str,
    synonyms: Optional[Mapping[str, Sequence[str]]] = None,
) -> float:
    """Similarity from names alone: exact, containment, synonyms and token overlap."""
    norm_col = normalize_caption(column_name)
    norm_cap = normalize_caption(caption)
    if not norm_col or not norm_cap:
        return 0.0

    score = 0.0
    if norm_col == norm_cap:
        score = EXACT_SCORE
    elif _contains(norm_col, norm_cap):
        score = CONTAINMENT_SCORE

    for synonym in get_synonyms(caption, synonyms):
        norm_syn = normalize_caption(synonym)
        if not norm_syn:
            continue
        if norm_col == norm_syn:
            score = max(score, SYNONYM_EXACT_SCORE)
        elif _contains(norm_col, norm_syn):
            score = max(score, SYNONYM_CONTAINMENT_SCORE)

    return max(score, JACCARD_WEIGHT * token_jaccard(norm_col, norm_cap))


def name_boost(column_name: str, caption: str) -> float:
    """Sum of the domain boosts a column name earns toward a caption."""
    norm_col = normalize_caption(column_name)
    return sum(
        weight
        for pattern, target, weight in NAME_BOOSTS
        if target == caption and pattern.search(norm_col)
    )


def score(
    column_name: str,
    caption: str,
    column_type: Optional[ColumnType] = None,
    synonyms: Optional[Mapping[str, Sequence[str]]] = None,
) -> float:
    """
    Score how well a column matches a caption.

    Name signals and name boosts are summed and clamped. Type evidence then
    closes a fixed share of the remaining gap to 1.0, so a type hint can lift
    a weak name match but cannot on its own produce an exact-match score.
    Adding the type weight as a flat bonus instead would let type evidence
    turn a partial name match into a certain one.

    Args:
        column_name: Header of the import column
        caption: Target caption text
        column_type: Inferred type of the column, if known
        synonyms: Optional synonym table overriding the built-in one

    Returns:
        Confidence in [0, 1]; identical inputs always give identical output
    """
    if not normalize_caption(column_name) or not normalize_caption(caption):
        return 0.0

    value = name_similarity(column_name, caption, synonyms) + name_boost(column_name, caption)
    value = max(0.0, min(1.0, value))

    if column_type is not None:
        weight = TYPE_BOOSTS.get(column_type, {}).get(caption, 0.0)
        value += weight * (1.0 - value)

    return max(0.0, min(1.0, value))
