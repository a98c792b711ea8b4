"""Tests for the column/caption scoring function."""

import pytest

from importmap.mapping import CAPTION_SYNONYMS, AVAILABLE_CAPTIONS, ColumnType
from importmap.mapping.scoring import (
    name_boost,
    name_similarity,
    normalize_caption,
    score,
    token_jaccard,
)


class TestNormalize:
    """Test caption normalization."""

    def test_lowercases_and_strips_parentheticals(self):
        assert normalize_caption("  Forename(s) ") == "forename"

    def test_non_alphanumerics_become_single_spaces(self):
        assert normalize_caption("E-Mail__Address!!") == "e mail address"

    def test_only_punctuation_is_empty(self):
        assert normalize_caption("(s) --") == ""

    def test_token_jaccard(self):
        assert token_jaccard("a b", "b c") == pytest.approx(1 / 3)
        assert token_jaccard("", "") == 0.0


class TestScore:
    """Test the combined confidence score."""

    @pytest.mark.parametrize(
        "text", ["Email", "Forename(s)", "Org Unit", "Employee ID", "Some Custom Field", "x"]
    )
    def test_identical_inputs_score_one(self, text):
        assert score(text, text) == 1.0

    def test_identical_inputs_score_one_with_type(self):
        assert score("Email", "Email", ColumnType.EMAIL) == 1.0
        assert score("Reference", "Reference", ColumnType.NUMBER) == 1.0

    def test_empty_normalized_input_scores_zero(self):
        assert score("(s)", "(s)") == 0.0
        assert score("", "Email") == 0.0

    def test_containment(self):
        assert score("Org", "Org Unit") == 1.0  # 0.98 synonym + org boost
        assert name_similarity("Surname Text", "Surname") == pytest.approx(0.92)

    def test_synonym_exact_at_least_098(self):
        assert score("Given Name", "Forename(s)") == pytest.approx(0.98)

    def test_synonym_containment_at_least_092(self):
        assert score("Email Address", "Email") == pytest.approx(0.92)
        assert score("First Name", "Forename(s)") == pytest.approx(0.92)

    def test_token_jaccard_contributes(self):
        # {work, phone, number} vs {mobile, phone}: 1/4 overlap
        assert score("Work Phone Number", "Mobile Phone") == pytest.approx(0.15)

    def test_unrelated_scores_zero(self):
        assert score("Job Title", "Surname") == 0.0

    def test_score_in_unit_interval(self):
        for caption in AVAILABLE_CAPTIONS:
            for column in ["Dept", "Staff ID", "Org Code", "Email Addr", "Start"]:
                for column_type in [None, *ColumnType]:
                    assert 0.0 <= score(column, caption, column_type) <= 1.0


class TestBoosts:
    """Test deterministic name and type boosts."""

    def test_identifier_names_favor_employee_id_over_reference(self):
        assert name_boost("Staff No", "Employee ID") == pytest.approx(0.25)
        assert name_boost("Staff No", "Reference") == pytest.approx(0.15)
        assert score("Staff No", "Employee ID") > score("Staff No", "Reference")

    def test_department_names(self):
        assert score("Dept", "Department") == 1.0
        assert name_boost("Dept", "Org Unit") == pytest.approx(-0.05)
        assert score("Department", "Org Unit") == 0.0  # clamped

    def test_org_names_favor_org_unit(self):
        assert score("Division", "Org Unit") == 1.0
        assert name_boost("Business Unit", "Org Unit") == pytest.approx(0.2)

    def test_type_evidence(self):
        assert score("Contact", "Email", ColumnType.EMAIL) == pytest.approx(0.3)
        assert score("Contact", "Username", ColumnType.EMAIL) == pytest.approx(0.1)
        assert score("Joined", "Start Date", ColumnType.DATE) == pytest.approx(0.3)
        assert score("Contact", "Email", ColumnType.TEXT) == 0.0

    def test_type_closes_gap_without_faking_exact(self):
        boosted = score("Email Address", "Email", ColumnType.EMAIL)
        assert boosted == pytest.approx(0.92 + 0.3 * 0.08)
        assert boosted < 0.97


class TestDeterminism:
    """Test that scoring does not depend on iteration order."""

    def test_reversed_synonym_lists_give_same_scores(self):
        reversed_table = {
            caption: tuple(reversed(phrasings))
            for caption, phrasings in CAPTION_SYNONYMS.items()
        }
        columns = ["Email Address", "First Name", "Dept Code", "Employee No", "Hire Date", "Org"]
        for caption in AVAILABLE_CAPTIONS:
            for column in columns:
                for column_type in [None, *ColumnType]:
                    assert score(column, caption, column_type) == score(
                        column, caption, column_type, reversed_table
                    )

    def test_repeated_calls_identical(self):
        results = {score("Dept Code", "Org Unit", ColumnType.TEXT) for _ in range(5)}
        assert len(results) == 1
