"""Caption-first matching of import columns to captions."""

import logging
from typing import Iterable, Mapping, Optional, Sequence

from .models import ImportColumn, MatchCandidate
from .scoring import score

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTANCE_THRESHOLD = 0.72


def resolve_collisions(candidates: Iterable[MatchCandidate]) -> list[MatchCandidate]:
    """
    Keep at most one candidate per column and per caption.

    The higher-confidence candidate wins; on a tie the one seen first is
    kept. Output follows the order in which each column first appeared.
    """
    by_column: dict[str, MatchCandidate] = {}
    for candidate in candidates:
        previous = by_column.get(candidate.csv_column)
        if previous is None or candidate.confidence > previous.confidence:
            by_column[candidate.csv_column] = candidate

    by_caption: dict[str, MatchCandidate] = {}
    for candidate in by_column.values():
        previous = by_caption.get(candidate.target_caption)
        if previous is None or candidate.confidence > previous.confidence:
            by_caption[candidate.target_caption] = candidate

    return list(by_caption.values())


def merge_candidates(
    primary: Sequence[MatchCandidate], secondary: Sequence[MatchCandidate]
) -> list[MatchCandidate]:
    """
    Combine two suggestion sets, e.g. remote and local ones.

    Secondary candidates only fill captions and columns the primary set
    leaves open, then collisions are resolved.
    """
    taken_columns = {c.csv_column for c in primary}
    taken_captions = {c.target_caption for c in primary}

    merged = list(primary)
    for candidate in secondary:
        if candidate.csv_column in taken_columns or candidate.target_caption in taken_captions:
            continue
        merged.append(candidate)

    return resolve_collisions(merged)


class MatchingEngine:
    """
    Finds the best column for every caption.

    Iterates captions first: each caption keeps its best-scoring column
    (earliest column wins ties) when the score reaches the acceptance
    threshold, then column collisions are resolved.
    """

    def __init__(
        self,
        acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD,
        synonyms: Optional[Mapping[str, Sequence[str]]] = None,
    ):
        self.acceptance_threshold = acceptance_threshold
        self.synonyms = synonyms

    def best_column(
        self, columns: Sequence[ImportColumn], caption: str
    ) -> tuple[Optional[ImportColumn], float]:
        """Return the highest-scoring column for a caption and its raw score."""
        best: Optional[ImportColumn] = None
        best_score = 0.0
        for column in columns:
            value = score(column.name, caption, column.type, self.synonyms)
            if value > best_score:
                best, best_score = column, value
        return best, best_score

    def compute_suggestions(
        self, columns: Sequence[ImportColumn], captions: Sequence[str]
    ) -> list[MatchCandidate]:
        """
        Compute at most one candidate per caption and per column.

        Args:
            columns: Analyzed import columns
            captions: Target captions (blank captions are skipped)

        Returns:
            Accepted candidates; empty when either input is empty
        """
        if not columns or not captions:
            return []

        results = []
        for caption in captions:
            if not caption or not caption.strip():
                continue
            column, best_score = self.best_column(columns, caption)
            if column is None:
                continue
            if best_score >= self.acceptance_threshold:
                results.append(
                    MatchCandidate(
                        csv_column=column.name,
                        target_caption=caption,
                        confidence=round(best_score, 2),
                    )
                )
            else:
                logger.debug(
                    f"Best column for '{caption}' is '{column.name}' "
                    f"at {best_score:.2f}, below threshold"
                )

        resolved = resolve_collisions(results)
        logger.info(
            f"Computed {len(resolved)} suggestions for {len(captions)} captions "
            f"over {len(columns)} columns"
        )
        return resolved
