"""Tests for the mapping session orchestrator."""

import asyncio

import pytest

from importmap.codec import EmptyInputError, InputFormatError
from importmap.mapping import (
    ColumnNotFoundError,
    DuplicateCaptionError,
    ExportBlockedError,
    MatchCandidate,
    SlotNotFoundError,
    UnassignedSlotError,
)
from importmap.session import MappingSession
from importmap.suggestions import HttpSuggestionProvider, SuggestionProvider, SuggestionResponse

MANAGER_SLOT = "slot-6"
STAFF_CSV = "Employee ID,Contact,Email Address\n1001,bob@example.com,ann@example.com\n"


def _slot(session, caption):
    return next(s for s in session.slots if s.caption == caption)


class GatedProvider(SuggestionProvider):
    """Provider that holds its response until the test releases it."""

    def __init__(self, response=None):
        self.response = response or SuggestionResponse()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch(self, request):
        self.started.set()
        await self.release.wait()
        return self.response


class TestLoadFile:
    """Test loading files into a session."""

    @pytest.mark.asyncio
    async def test_load_builds_columns(self, session, people_csv):
        columns = await session.load_file(people_csv, file_name="people.csv")
        assert [c.name for c in columns][:3] == ["Reference", "Org Unit", "Forename"]
        assert len(session.data_rows) == 2
        assert session.file_name == "people.csv"

    @pytest.mark.asyncio
    async def test_empty_input_leaves_state_untouched(self, session, people_csv):
        await session.load_file(people_csv, file_name="people.csv")
        version = session.version

        with pytest.raises(EmptyInputError):
            await session.load_file("\n\n", file_name="other.csv")

        assert session.version == version
        assert session.file_name == "people.csv"
        assert len(session.columns) == 7

    @pytest.mark.asyncio
    async def test_bad_extension_rejected(self, session):
        with pytest.raises(InputFormatError):
            await session.load_file("a,b\n1,2", file_name="people.xlsx")
        assert not session.is_loaded

    @pytest.mark.asyncio
    async def test_confirmed_slots_survive_reupload(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        reduced = "Reference,Email\nR9,zed@example.com\n"
        await session.load_file(reduced, file_name="people.csv")

        assert _slot(session, "Reference").confirmed
        assert _slot(session, "Reference").sample == "R9"
        assert _slot(session, "Email").confirmed
        surname = _slot(session, "Surname")
        assert surname.column is None
        assert not surname.confirmed


class TestSuggest:
    """Test suggestion cycles."""

    @pytest.mark.asyncio
    async def test_upload_applies_certain_and_skips_unmatched(self, session, people_csv):
        outcome = await session.upload(people_csv, file_name="people.csv")

        assert outcome.source == "local"
        assert len(outcome.certain) == 6
        assert outcome.uncertain == []
        assert session.confirmed_count == 6
        assert session.total_captions == 7
        assert _slot(session, "Manager Name").column is None
        assert _slot(session, "Forename(s)").column == "Forename"
        assert "Confirmed so far: 6/7 (86% coverage)." in outcome.summary

    @pytest.mark.asyncio
    async def test_uncertain_is_suggested_not_confirmed(self, session):
        text = "Employee ID,First Name,Email Address\n1001,Ann,ann@example.com\n"
        outcome = await session.upload(text, file_name="staff.csv")

        assert [c.target_caption for c in outcome.uncertain] == ["Forename(s)", "Email"]
        forename = _slot(session, "Forename(s)")
        assert forename.column == "First Name"
        assert forename.suggested
        assert not forename.confirmed
        assert session.validation_report is None

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back_to_heuristic(self, failing_provider, people_csv):
        session = MappingSession(provider=failing_provider)
        outcome = await session.upload(people_csv, file_name="people.csv")

        assert failing_provider.requests
        assert outcome.source == "local"
        assert len(outcome.certain) == 6

    @pytest.mark.asyncio
    async def test_provider_timeout_falls_back(self, people_csv):
        class SlowProvider(SuggestionProvider):
            async def fetch(self, request):
                await asyncio.sleep(1)
                return SuggestionResponse()

        session = MappingSession(provider=SlowProvider(), provider_timeout=0.01)
        outcome = await session.upload(people_csv, file_name="people.csv")
        assert outcome.source == "local"
        assert session.confirmed_count == 6

    @pytest.mark.asyncio
    async def test_remote_suggestions_are_validated_and_merged(self, stub_provider, people_csv):
        provider = stub_provider(
            SuggestionResponse(
                content="Here you go",
                mapping_suggestions=[
                    MatchCandidate(csv_column="Team Lead", target_caption="Manager Name", confidence=0.85),
                    MatchCandidate(csv_column="Ghost", target_caption="Email", confidence=0.99),
                    MatchCandidate(csv_column="Surname", target_caption="Nickname", confidence=0.99),
                ],
            )
        )
        session = MappingSession(provider=provider)
        outcome = await session.upload(people_csv, file_name="people.csv")

        request = provider.requests[0]
        assert request.csv_columns[0] == "Reference"
        assert request.current_mappings == {}

        assert outcome.source == "remote+local"
        assert [c.csv_column for c in outcome.uncertain] == ["Team Lead"]
        manager = _slot(session, "Manager Name")
        assert manager.column == "Team Lead"
        assert not manager.confirmed
        assert _slot(session, "Email").column == "Email"

    @pytest.mark.asyncio
    async def test_confirmed_slots_are_not_overwritten(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        await session.assign_column(MANAGER_SLOT, "Team Lead", confirm=True)
        outcome = await session.suggest()

        assert outcome.certain == []
        assert outcome.uncertain == []
        assert session.confirmed_count == 7

    @pytest.mark.asyncio
    async def test_results_discarded_after_newer_upload(self, people_csv):
        class ReloadingProvider(SuggestionProvider):
            def __init__(self):
                self.session = None

            async def fetch(self, request):
                await self.session.load_file("Colour,Size\nred,L\n", file_name="shirts.csv")
                return SuggestionResponse()

        provider = ReloadingProvider()
        session = MappingSession(provider=provider)
        provider.session = session
        await session.load_file(people_csv, file_name="people.csv")

        outcome = await session.suggest()

        assert outcome.certain == []
        assert "discarded" in outcome.summary
        assert session.file_name == "shirts.csv"
        assert session.confirmed_count == 0

    @pytest.mark.asyncio
    async def test_message_uses_provider(self, stub_provider, people_csv):
        provider = stub_provider(
            SuggestionResponse(
                content="Mapped Team Lead to Manager Name",
                mapping_suggestion=MatchCandidate(
                    csv_column="Team Lead", target_caption="Manager Name", confidence=0.9
                ),
            )
        )
        session = MappingSession(provider=provider)
        await session.load_file(people_csv, file_name="people.csv")

        outcome = await session.send_message("team lead is the manager")

        assert provider.requests[0].request_type.value == "message"
        assert provider.requests[0].message == "team lead is the manager"
        assert outcome.content == "Mapped Team Lead to Manager Name"
        assert _slot(session, "Manager Name").column == "Team Lead"

    @pytest.mark.asyncio
    async def test_message_fallback_content(self, failing_provider, people_csv):
        session = MappingSession(provider=failing_provider)
        await session.load_file(people_csv, file_name="people.csv")
        outcome = await session.send_message("hello")
        assert "local matching" in outcome.content
        assert session.confirmed_count == 6

    @pytest.mark.asyncio
    async def test_unreachable_provider_url_falls_back(self, people_csv):
        provider = HttpSuggestionProvider("http://provider.test:badport/suggest")
        session = MappingSession(provider=provider)
        outcome = await session.upload(people_csv, file_name="people.csv")

        assert outcome.source == "local"
        assert session.confirmed_count == 6

    @pytest.mark.asyncio
    async def test_edit_during_fetch_is_kept(self):
        provider = GatedProvider(
            SuggestionResponse(
                mapping_suggestions=[
                    MatchCandidate(csv_column="Email Address", target_caption="Email", confidence=0.99)
                ]
            )
        )
        session = MappingSession(provider=provider)
        await session.load_file(STAFF_CSV, file_name="staff.csv")
        email_slot = _slot(session, "Email").id

        task = asyncio.create_task(session.suggest())
        await provider.started.wait()
        await session.assign_column(email_slot, "Contact")
        provider.release.set()
        outcome = await task

        email = _slot(session, "Email")
        assert email.column == "Contact"
        assert not email.confirmed
        assert "Email" not in [c.target_caption for c in outcome.certain + outcome.uncertain]

    @pytest.mark.asyncio
    async def test_column_claimed_during_fetch_is_not_released(self):
        provider = GatedProvider(
            SuggestionResponse(
                mapping_suggestions=[
                    MatchCandidate(csv_column="Email Address", target_caption="Email", confidence=0.99)
                ]
            )
        )
        session = MappingSession(provider=provider)
        await session.load_file(STAFF_CSV, file_name="staff.csv")

        task = asyncio.create_task(session.suggest())
        await provider.started.wait()
        await session.assign_column(MANAGER_SLOT, "Email Address")
        provider.release.set()
        await task

        assert _slot(session, "Manager Name").column == "Email Address"
        assert _slot(session, "Email").column != "Email Address"

    @pytest.mark.asyncio
    async def test_untouched_slots_still_filled_after_concurrent_edit(self):
        provider = GatedProvider()
        session = MappingSession(provider=provider)
        await session.load_file(STAFF_CSV, file_name="staff.csv")

        task = asyncio.create_task(session.suggest())
        await provider.started.wait()
        await session.assign_column(MANAGER_SLOT, "Contact")
        provider.release.set()
        outcome = await task

        assert _slot(session, "Email").column == "Email Address"
        assert [c.target_caption for c in outcome.uncertain] == ["Email"]


class TestSlotEdits:
    """Test serialized slot mutations."""

    @pytest.mark.asyncio
    async def test_confirm_requires_column(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        with pytest.raises(UnassignedSlotError):
            await session.confirm(MANAGER_SLOT)

    @pytest.mark.asyncio
    async def test_confirm_unknown_slot(self, session):
        with pytest.raises(SlotNotFoundError):
            await session.confirm("slot-99")

    @pytest.mark.asyncio
    async def test_manual_assignment_is_not_confirmation(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        slot = await session.assign_column(MANAGER_SLOT, "Team Lead")
        assert slot.column == "Team Lead"
        assert slot.sample == "Bob Jones"
        assert not slot.confirmed

        slot = await session.confirm(MANAGER_SLOT)
        assert slot.confirmed

    @pytest.mark.asyncio
    async def test_assignment_releases_column_elsewhere(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        await session.assign_column(MANAGER_SLOT, "Surname")

        assert _slot(session, "Manager Name").column == "Surname"
        surname = _slot(session, "Surname")
        assert surname.column is None
        assert not surname.confirmed

    @pytest.mark.asyncio
    async def test_unknown_column(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        with pytest.raises(ColumnNotFoundError):
            await session.assign_column(MANAGER_SLOT, "Nope")

    @pytest.mark.asyncio
    async def test_clear_assignment(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        slot = await session.assign_column("slot-0", None)
        assert slot.column is None
        assert not slot.confirmed

    @pytest.mark.asyncio
    async def test_confirm_mapping(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        slot = await session.confirm_mapping("Team Lead", "Manager Name")
        assert slot.confirmed
        assert slot.confidence == 0.0
        assert session.all_confirmed

    @pytest.mark.asyncio
    async def test_confirm_all_confirms_suggested_only(self, session):
        text = "Employee ID,First Name,Email Address\n1001,Ann,ann@example.com\n"
        await session.upload(text, file_name="staff.csv")
        changed = await session.confirm_all()
        assert changed == 2
        assert _slot(session, "Forename(s)").confirmed
        assert _slot(session, "Email").confirmed
        assert not _slot(session, "Surname").confirmed

    @pytest.mark.asyncio
    async def test_rename_unconfirms(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        slot = await session.rename_caption("slot-5", "Role")
        assert slot.caption == "Role"
        assert not slot.confirmed
        assert slot.column == "Job Title"

    @pytest.mark.asyncio
    async def test_duplicate_captions_rejected(self, session):
        with pytest.raises(DuplicateCaptionError):
            await session.add_slot(" email ")
        with pytest.raises(DuplicateCaptionError):
            await session.rename_caption("slot-1", "Surname")
        with pytest.raises(DuplicateCaptionError):
            MappingSession(slots=[*session.slots, session.slots[0].model_copy(update={"id": "x"})])

    @pytest.mark.asyncio
    async def test_add_and_remove_slots(self, session):
        slot = await session.add_slot("Phone", key_field=True)
        assert slot.order == 7
        assert slot.id == "slot-7"
        assert session.total_captions == 8

        blank = await session.add_slot()
        assert blank.caption == ""
        assert session.total_captions == 8

        await session.remove_slot(slot.id)
        assert session.total_captions == 7
        with pytest.raises(SlotNotFoundError):
            await session.remove_slot(slot.id)

    @pytest.mark.asyncio
    async def test_set_flags(self, session):
        slot = await session.set_flags("slot-0", key_field=False)
        assert not slot.key_field
        assert slot.match_by_id

    @pytest.mark.asyncio
    async def test_update_slot_applies_all_parts_once(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        start = session.version

        slot = await session.update_slot(
            MANAGER_SLOT, caption="Line Manager", column="Team Lead", confirm=True, key_field=True
        )

        assert session.version == start + 1
        assert slot.caption == "Line Manager"
        assert slot.column == "Team Lead"
        assert slot.confirmed
        assert slot.key_field

    @pytest.mark.asyncio
    async def test_rejected_update_changes_nothing(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        start = session.version

        with pytest.raises(ColumnNotFoundError):
            await session.update_slot("slot-5", caption="Role", column="Nope")
        with pytest.raises(DuplicateCaptionError):
            await session.update_slot("slot-5", caption="Email", column="Team Lead")

        job = _slot(session, "Job Title")
        assert job.column == "Job Title"
        assert job.confirmed
        assert _slot(session, "Manager Name").column is None
        assert session.version == start

    @pytest.mark.asyncio
    async def test_concurrent_edits_are_serialized(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        start = session.version

        await asyncio.gather(
            session.assign_column(MANAGER_SLOT, "Team Lead", confirm=True),
            session.set_flags("slot-1", key_field=True),
            session.rename_caption("slot-5", "Role"),
            session.add_slot("Phone"),
        )

        assert session.version == start + 4
        assert _slot(session, "Manager Name").confirmed
        assert _slot(session, "Org Unit").key_field
        assert _slot(session, "Role").column == "Job Title"
        assert session.total_captions == 8


class TestValidationAndExport:
    """Test validation, cell fixes and export gating."""

    @pytest.mark.asyncio
    async def test_export_blocked_until_all_confirmed(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")

        with pytest.raises(ExportBlockedError) as exc_info:
            await session.export()
        assert exc_info.value.confirmed == 6
        assert exc_info.value.total == 7
        assert "(6/7)" in str(exc_info.value)

        await session.assign_column(MANAGER_SLOT, "Team Lead", confirm=True)
        result = await session.export()

        assert result.header == [
            "Reference",
            "Org Unit",
            "Forename(s)",
            "Surname",
            "Email",
            "Job Title",
            "Manager Name",
        ]
        assert result.file_name == "people-mapped.csv"
        assert result.row_count == 2
        lines = result.content.split("\n")
        assert lines[0] == "Reference,Org Unit,Forename(s),Surname,Email,Job Title,Manager Name"
        assert lines[1] == "R001,Sales,Ann,Smith,ann@example.com,Engineer,Bob Jones"

    @pytest.mark.asyncio
    async def test_export_with_nothing_confirmed(self, session):
        with pytest.raises(ExportBlockedError, match="no confirmed mappings"):
            await session.export()

    @pytest.mark.asyncio
    async def test_export_follows_slot_order_after_removal(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        await session.remove_slot(MANAGER_SLOT)
        await session.remove_slot("slot-1")
        result = await session.export()
        assert result.header == ["Reference", "Forename(s)", "Surname", "Email", "Job Title"]
        assert result.content.split("\n")[2] == "R002,Ben,Jones,not-an-email,Analyst"

    @pytest.mark.asyncio
    async def test_validation_runs_once_all_confirmed(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        assert await session.validate() is None

        await session.assign_column(MANAGER_SLOT, "Team Lead", confirm=True)
        report = await session.validate()

        assert [i.caption for i in report.issues] == ["Email"]
        assert report.issues[0].samples == [(3, "not-an-email")]

    @pytest.mark.asyncio
    async def test_fix_cell_rechecks_caption(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        await session.assign_column(MANAGER_SLOT, "Team Lead", confirm=True)

        issue = await session.fix_cell("Email", 3, "ben@example.com")

        assert issue is None
        assert not session.validation_report.has_issues
        result = await session.export()
        assert "ben@example.com" in result.content

    @pytest.mark.asyncio
    async def test_fix_cell_rejects_header_row(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        with pytest.raises(ValueError):
            await session.fix_cell("Email", 1, "x@y")
        with pytest.raises(ValueError):
            await session.fix_cell("Email", 9, "x@y")

    @pytest.mark.asyncio
    async def test_date_format_change_revalidates(self):
        text = "Reference,Start Date\nR1,2024-01-15\n"
        session = MappingSession(slots=[])
        await session.add_slot("Reference")
        await session.add_slot("Start Date")
        await session.upload(text, file_name="dates.csv")

        report = await session.validate()
        assert [i.caption for i in report.issues] == ["Start Date"]

        await session.set_date_format("YYYY-MM-DD")
        assert not session.validation_report.has_issues

    @pytest.mark.asyncio
    async def test_snapshot(self, session, people_csv):
        await session.upload(people_csv, file_name="people.csv")
        data = session.snapshot()
        assert data["confirmed"] == 6
        assert data["total"] == 7
        assert data["delimiter"] == "comma"
        assert data["columns"][4]["type"] == "email"
        assert data["validation"] is None
