"""Certain / uncertain classification of match candidates."""

from typing import Iterable, Mapping, Optional, Sequence

from .models import Certainty, MatchCandidate
from .scoring import normalize_caption
from .synonyms import get_synonyms

DEFAULT_CERTAINTY_THRESHOLD = 0.97


class CertaintyClassifier:
    """Decides which candidates may be applied without asking the user."""

    def __init__(
        self,
        certainty_threshold: float = DEFAULT_CERTAINTY_THRESHOLD,
        synonyms: Optional[Mapping[str, Sequence[str]]] = None,
    ):
        self.certainty_threshold = certainty_threshold
        self.synonyms = synonyms

    def classify(self, candidate: MatchCandidate) -> Certainty:
        """
        Classify a candidate.

        Certain when the normalized column equals the normalized caption or
        one of its registered synonyms, or when confidence reaches the
        certainty threshold.
        """
        norm_col = normalize_caption(candidate.csv_column)
        norm_cap = normalize_caption(candidate.target_caption)
        if not norm_col or not norm_cap:
            return Certainty.UNCERTAIN

        if norm_col == norm_cap:
            return Certainty.CERTAIN

        synonyms = get_synonyms(candidate.target_caption, self.synonyms)
        if any(normalize_caption(s) == norm_col for s in synonyms):
            return Certainty.CERTAIN

        if candidate.confidence >= self.certainty_threshold:
            return Certainty.CERTAIN

        return Certainty.UNCERTAIN

    def split(
        self, candidates: Iterable[MatchCandidate]
    ) -> tuple[list[MatchCandidate], list[MatchCandidate]]:
        """Partition candidates into (certain, uncertain), keeping order."""
        certain = []
        uncertain = []
        for candidate in candidates:
            if self.classify(candidate) == Certainty.CERTAIN:
                certain.append(candidate)
            else:
                uncertain.append(candidate)
        return certain, uncertain
