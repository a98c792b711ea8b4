"""Pipeline orchestrator owning one import session's mapping state."""

import asyncio
import logging
import uuid
from pathlib import PurePath
from typing import Optional, Sequence, Union

from ..codec import (
    Delimiter,
    check_file_name,
    parse_delimited,
    serialize_delimited,
)
from ..mapping import (
    CaptionSlot,
    CertaintyClassifier,
    ColumnAnalyzer,
    ColumnNotFoundError,
    DateFormat,
    DuplicateCaptionError,
    ExportBlockedError,
    ExportResult,
    ImportColumn,
    MatchCandidate,
    MatchingEngine,
    SlotNotFoundError,
    SuggestionOutcome,
    UnassignedSlotError,
    ValidationEngine,
    ValidationIssue,
    ValidationReport,
    default_slots,
    merge_candidates,
    score,
)
from ..mapping.validator import summarize
from ..suggestions import (
    RequestType,
    SuggestionProvider,
    SuggestionProviderError,
    SuggestionRequest,
    SuggestionResponse,
    filter_known,
)

logger = logging.getLogger(__name__)

FALLBACK_CONTENT = (
    "The suggestion service is unavailable right now, "
    "so these suggestions come from local matching."
)


def _percent(value: float) -> int:
    return int(round(value * 100))


def _bullets(candidates: Sequence[MatchCandidate]) -> list[str]:
    return [
        f"• {c.csv_column} → {c.target_caption} ({_percent(c.confidence)}%)"
        for c in candidates
    ]


class MappingSession:
    """
    Owns rows, columns and caption slots for one import.

    Every mutation runs under a single asyncio.Lock and replaces the slot
    list with an updated copy, bumping ``version``. Only the suggestion
    provider call happens outside the lock; its results are discarded if a
    newer file was loaded while it was in flight, and never override slots
    edited in the meantime.
    """

    def __init__(
        self,
        provider: Optional[SuggestionProvider] = None,
        acceptance_threshold: float = 0.72,
        certainty_threshold: float = 0.97,
        date_format: Union[DateFormat, str] = DateFormat.DMY,
        provider_timeout: float = 8.0,
        slots: Optional[Sequence[CaptionSlot]] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or str(uuid.uuid4())
        self.provider = provider
        self.provider_timeout = provider_timeout
        self.analyzer = ColumnAnalyzer()
        self.matcher = MatchingEngine(acceptance_threshold=acceptance_threshold)
        self.classifier = CertaintyClassifier(certainty_threshold=certainty_threshold)
        self.validator = ValidationEngine(date_format)

        self.rows: list[list[str]] = []
        self.columns: list[ImportColumn] = []
        self.has_header = True
        self.delimiter = Delimiter.COMMA
        self.file_name: Optional[str] = None
        self.validation_report: Optional[ValidationReport] = None
        self.version = 0

        initial = list(slots) if slots is not None else default_slots()
        self._check_unique([s.caption for s in initial])
        self._slots: list[CaptionSlot] = [s.model_copy() for s in initial]
        self._slot_counter = len(self._slots)
        self._dataset_version = 0
        self._lock = asyncio.Lock()

    # Read-only views

    @property
    def slots(self) -> list[CaptionSlot]:
        """Slots in display order (copies; mutate through session methods)."""
        return [s.model_copy() for s in sorted(self._slots, key=lambda s: s.order)]

    @property
    def is_loaded(self) -> bool:
        return bool(self.rows)

    @property
    def data_rows(self) -> list[list[str]]:
        return self.rows[1:] if self.has_header else self.rows

    @property
    def total_captions(self) -> int:
        return sum(1 for s in self._slots if s.has_caption)

    @property
    def confirmed_count(self) -> int:
        return sum(1 for s in self._slots if s.has_caption and s.confirmed)

    @property
    def all_confirmed(self) -> bool:
        total = self.total_captions
        return total > 0 and self.confirmed_count == total

    @property
    def current_mappings(self) -> dict[str, str]:
        """Assigned column -> caption, as sent to the suggestion provider."""
        return {s.column: s.caption for s in self._slots if s.column and s.has_caption}

    # Internal helpers (callers hold the lock)

    @staticmethod
    def _check_unique(captions: Sequence[str]) -> None:
        seen = set()
        for caption in captions:
            key = caption.strip().casefold()
            if not key:
                continue
            if key in seen:
                raise DuplicateCaptionError(caption)
            seen.add(key)

    def _column(self, name: str) -> ImportColumn:
        for column in self.columns:
            if column.name == name:
                return column
        raise ColumnNotFoundError(f"Column '{name}' is not in the current file")

    @staticmethod
    def _index_of(slots: list[CaptionSlot], slot_id: str) -> int:
        for i, slot in enumerate(slots):
            if slot.id == slot_id:
                return i
        raise SlotNotFoundError(f"Caption slot '{slot_id}' not found")

    @staticmethod
    def _index_of_caption(slots: list[CaptionSlot], caption: str) -> Optional[int]:
        key = caption.strip().casefold()
        for i, slot in enumerate(slots):
            if slot.has_caption and slot.caption.strip().casefold() == key:
                return i
        return None

    @staticmethod
    def _release(slots: list[CaptionSlot], column: str, keep: int) -> None:
        """Unassign a column from every slot except ``keep``."""
        for i, slot in enumerate(slots):
            if i != keep and slot.column == column:
                slots[i] = slot.model_copy(
                    update={
                        "column": None,
                        "sample": None,
                        "confidence": None,
                        "suggested": False,
                        "confirmed": False,
                    }
                )

    def _sample_for(self, column: ImportColumn) -> Optional[str]:
        return column.sample[0] if column.sample else None

    def _commit(self, slots: list[CaptionSlot], revalidate: bool = True) -> None:
        self._slots = slots
        self.version += 1
        if revalidate:
            self._refresh_validation()

    def _refresh_validation(self) -> None:
        if self.is_loaded and self.all_confirmed:
            self.validation_report = self.validator.validate(
                self.rows, self._slots, self.columns, self.has_header
            )
        else:
            self.validation_report = None

    def _apply(
        self,
        candidates: Sequence[MatchCandidate],
        confirm: bool,
        protected: frozenset = frozenset(),
    ) -> list[MatchCandidate]:
        """
        Write candidates into slots; returns the candidates actually applied.

        Slots in ``protected`` are left alone, and so are the columns they hold.
        """
        slots = list(self._slots)
        applied = []
        claimed = {s.column for s in slots if s.confirmed and s.column}
        claimed.update(s.column for s in slots if s.id in protected and s.column)

        for candidate in candidates:
            index = self._index_of_caption(slots, candidate.target_caption)
            if index is None or slots[index].confirmed or slots[index].id in protected:
                continue
            if candidate.csv_column in claimed:
                continue
            try:
                column = self._column(candidate.csv_column)
            except ColumnNotFoundError:
                continue

            self._release(slots, column.name, keep=index)
            slots[index] = slots[index].model_copy(
                update={
                    "column": column.name,
                    "sample": self._sample_for(column),
                    "confidence": candidate.confidence,
                    "suggested": True,
                    "confirmed": confirm,
                }
            )
            if confirm:
                claimed.add(column.name)
            applied.append(candidate)

        self._commit(slots)
        return applied

    # File loading

    async def load_file(
        self,
        text: str,
        delimiter: Union[Delimiter, str] = Delimiter.COMMA,
        has_header: bool = True,
        file_name: Optional[str] = None,
    ) -> list[ImportColumn]:
        """
        Parse and analyze a file, then reset mapping state for it.

        Parsing happens before any state is touched, so an InputFormatError
        leaves the session unchanged. Confirmed slots whose column still
        exists survive; every other slot is cleared.

        Raises:
            InputFormatError: Unrecognized file name or empty input
        """
        if file_name is not None:
            check_file_name(file_name)
        delimiter = Delimiter(delimiter)
        rows = parse_delimited(text, delimiter)
        columns = self.analyzer.analyze(rows, has_header)

        async with self._lock:
            self.rows = rows
            self.columns = columns
            self.has_header = has_header
            self.delimiter = delimiter
            self.file_name = file_name
            self._dataset_version += 1

            by_name = {c.name: c for c in columns}
            slots = []
            for slot in self._slots:
                column = by_name.get(slot.column) if slot.column else None
                if slot.confirmed and column is not None:
                    slots.append(slot.model_copy(update={"sample": self._sample_for(column)}))
                else:
                    slots.append(
                        slot.model_copy(
                            update={
                                "column": None,
                                "sample": None,
                                "confidence": None,
                                "suggested": False,
                                "confirmed": False,
                            }
                        )
                    )
            self._commit(slots)

        logger.info(
            f"Loaded {file_name or 'input'}: {len(columns)} columns, "
            f"{len(self.data_rows)} data rows"
        )
        return columns

    # Suggestions

    async def _fetch_remote(self, request: SuggestionRequest) -> Optional[SuggestionResponse]:
        if self.provider is None:
            return None
        try:
            return await asyncio.wait_for(
                self.provider.fetch(request), timeout=self.provider_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Suggestion provider timed out after {self.provider_timeout}s, "
                "falling back to local matching"
            )
        except SuggestionProviderError as e:
            logger.warning(f"Suggestion provider failed ({e}), falling back to local matching")
        return None

    @staticmethod
    def _open_targets(
        slots: Sequence[CaptionSlot],
        columns: Sequence[ImportColumn],
        protected: frozenset = frozenset(),
    ) -> tuple[list[str], list[ImportColumn]]:
        """Captions still to be mapped and the columns free to take them."""
        captions = [
            s.caption
            for s in slots
            if s.has_caption and not s.confirmed and s.id not in protected
        ]
        claimed = {s.column for s in slots if s.column and (s.confirmed or s.id in protected)}
        return captions, [c for c in columns if c.name not in claimed]

    def _plan(
        self,
        remote_suggestions: Sequence[MatchCandidate],
        slots: Sequence[CaptionSlot],
        columns: Sequence[ImportColumn],
        protected: frozenset = frozenset(),
    ) -> tuple[list[MatchCandidate], set]:
        """Merge provider suggestions with local matches for the open targets."""
        open_captions, open_columns = self._open_targets(slots, columns, protected)
        remote = filter_known(
            remote_suggestions, [c.name for c in open_columns], open_captions
        )
        local = self.matcher.compute_suggestions(open_columns, open_captions)
        return merge_candidates(remote, local), {c.key for c in remote}

    @staticmethod
    def _assignment(slot: CaptionSlot) -> tuple:
        return slot.caption, slot.column, slot.confirmed

    async def suggest(
        self,
        request_type: Union[RequestType, str] = RequestType.INITIAL_SUGGESTIONS,
        message: Optional[str] = None,
    ) -> SuggestionOutcome:
        """
        Run one suggestion cycle for unconfirmed captions.

        Remote suggestions (validated against the open columns and captions)
        take precedence; local heuristic matches fill whatever is left and
        are the whole result when the provider is absent or fails. Certain
        matches are applied confirmed, uncertain ones only as suggestions.

        Slots edited while the provider call was in flight keep the edit:
        the plan is recomputed against the current slots and neither those
        slots nor their columns are touched.
        """
        request_type = RequestType(request_type)

        async with self._lock:
            dataset_version = self._dataset_version
            version = self.version
            columns = list(self.columns)
            slots = list(self._slots)
            mappings = self.current_mappings

        open_captions, _ = self._open_targets(slots, columns)

        remote_suggestions: list[MatchCandidate] = []
        content = None
        sources = []
        if columns and (open_captions or request_type == RequestType.MESSAGE):
            request = SuggestionRequest(
                csv_columns=[c.name for c in columns],
                captions=[s.caption for s in slots if s.has_caption],
                current_mappings=mappings,
                request_type=request_type,
                message=message,
            )
            response = await self._fetch_remote(request)
            if response is not None:
                sources.append("remote")
                content = response.content or None
                remote_suggestions = response.all_suggestions()
            elif request_type == RequestType.MESSAGE:
                content = FALLBACK_CONTENT

        merged, remote_keys = self._plan(remote_suggestions, slots, columns)

        async with self._lock:
            if self._dataset_version != dataset_version:
                logger.info("Discarding suggestions computed for a previous file")
                return SuggestionOutcome(
                    source="+".join(sources),
                    summary="Suggestions were discarded because a newer file was loaded.",
                    content=content,
                )

            protected: frozenset = frozenset()
            if self.version != version:
                before = {s.id: self._assignment(s) for s in slots}
                protected = frozenset(
                    s.id for s in self._slots if before.get(s.id) != self._assignment(s)
                )
                logger.info(
                    f"{len(protected)} slot(s) changed during the suggestion fetch, "
                    "re-planning against the current slots"
                )
                merged, remote_keys = self._plan(
                    remote_suggestions, self._slots, self.columns, protected
                )

            if any(c.key not in remote_keys for c in merged) or not sources:
                sources.append("local")
            certain, uncertain = self.classifier.split(merged)
            applied_certain = self._apply(certain, confirm=True, protected=protected)
            applied_uncertain = self._apply(uncertain, confirm=False, protected=protected)

            outcome = SuggestionOutcome(
                certain=applied_certain,
                uncertain=applied_uncertain,
                source="+".join(sources),
                content=content,
            )
            outcome.summary = self._summarize(outcome)

        logger.info(
            f"Suggestion cycle ({outcome.source}): {len(outcome.certain)} certain, "
            f"{len(outcome.uncertain)} uncertain"
        )
        return outcome

    def _summarize(self, outcome: SuggestionOutcome) -> str:
        lines = []
        rows = len(self.data_rows)
        name = self.file_name or "your file"
        lines.append(f"I've analyzed “{name}” ({len(self.columns)} columns, {rows} rows).")

        if outcome.certain:
            lines.append("I've auto-applied the following strong matches:")
            lines.extend(_bullets(outcome.certain[:8]))
        if outcome.uncertain:
            lines.append("I'm less confident about the following. Please confirm them:")
            lines.extend(_bullets(outcome.uncertain[:12]))
        if not outcome.certain and not outcome.uncertain:
            lines.append("I could not suggest any mappings yet.")

        total = self.total_captions
        confirmed = self.confirmed_count
        coverage = _percent(confirmed / total) if total else 0
        lines.append(f"Confirmed so far: {confirmed}/{total} ({coverage}% coverage).")
        return "\n".join(lines)

    async def upload(
        self,
        text: str,
        delimiter: Union[Delimiter, str] = Delimiter.COMMA,
        has_header: bool = True,
        file_name: Optional[str] = None,
    ) -> SuggestionOutcome:
        """Load a file and immediately run the initial suggestion cycle."""
        await self.load_file(text, delimiter, has_header, file_name)
        return await self.suggest(RequestType.INITIAL_SUGGESTIONS)

    async def send_message(self, message: str) -> SuggestionOutcome:
        """Forward a chat message to the provider and apply what comes back."""
        return await self.suggest(RequestType.MESSAGE, message=message)

    # Slot edits

    async def confirm(self, slot_id: str) -> CaptionSlot:
        """
        Confirm the current assignment of a slot.

        Raises:
            SlotNotFoundError: Unknown slot id
            UnassignedSlotError: Slot has no column to confirm
        """
        async with self._lock:
            slots = list(self._slots)
            index = self._index_of(slots, slot_id)
            if slots[index].column is None:
                raise UnassignedSlotError(
                    f"Caption '{slots[index].caption}' has no column to confirm"
                )
            slots[index] = slots[index].model_copy(update={"confirmed": True})
            self._commit(slots)
            logger.info(f"Confirmed {slots[index].column} → {slots[index].caption}")
            return slots[index].model_copy()

    async def confirm_mapping(
        self, column: str, caption: str, confidence: Optional[float] = None
    ) -> CaptionSlot:
        """
        Assign a column to the slot holding ``caption`` and confirm it.

        The column is released from any other slot.
        """
        async with self._lock:
            slots = list(self._slots)
            index = self._index_of_caption(slots, caption)
            if index is None:
                raise SlotNotFoundError(f"No caption slot named '{caption}'")
            target = self._column(column)
            if confidence is None:
                confidence = round(score(target.name, slots[index].caption, target.type), 2)

            self._release(slots, target.name, keep=index)
            slots[index] = slots[index].model_copy(
                update={
                    "column": target.name,
                    "sample": self._sample_for(target),
                    "confidence": confidence,
                    "suggested": True,
                    "confirmed": True,
                }
            )
            self._commit(slots)
            logger.info(f"Confirmed {target.name} → {slots[index].caption}")
            return slots[index].model_copy()

    async def confirm_all(self) -> int:
        """Confirm every suggested, assigned slot. Returns how many changed."""
        async with self._lock:
            slots = list(self._slots)
            changed = 0
            for i, slot in enumerate(slots):
                if slot.suggested and slot.column and not slot.confirmed:
                    slots[i] = slot.model_copy(update={"confirmed": True})
                    changed += 1
            self._commit(slots)
            logger.info(f"Confirmed {changed} suggested mappings")
            return changed

    async def update_slot(
        self,
        slot_id: str,
        caption: Optional[str] = None,
        column: Optional[str] = None,
        clear_column: bool = False,
        confirm: bool = False,
        key_field: Optional[bool] = None,
        match_by_id: Optional[bool] = None,
    ) -> CaptionSlot:
        """
        Apply a caption, column and flag edit to one slot as a single change.

        Every part is checked before anything is written, so a rejected edit
        leaves the slot as it was. A changed caption needs re-confirmation;
        a manual column assignment is not a confirmation unless ``confirm``
        is set.

        Raises:
            SlotNotFoundError: Unknown slot id
            DuplicateCaptionError: Caption already used by another slot
            ColumnNotFoundError: Column is not in the current file
        """
        async with self._lock:
            slots = list(self._slots)
            index = self._index_of(slots, slot_id)
            current = slots[index]
            if caption is not None:
                others = [s.caption for i, s in enumerate(slots) if i != index]
                self._check_unique(others + [caption])
            target = self._column(column) if column is not None else None

            update: dict = {}
            if caption is not None and caption != current.caption:
                update["caption"] = caption
                update["confirmed"] = False
            if target is not None:
                self._release(slots, target.name, keep=index)
                update.update(
                    {
                        "column": target.name,
                        "sample": self._sample_for(target),
                        "confidence": round(
                            score(target.name, caption or current.caption, target.type), 2
                        ),
                        "suggested": False,
                        "confirmed": confirm,
                    }
                )
            elif clear_column:
                update.update(
                    {
                        "column": None,
                        "sample": None,
                        "confidence": None,
                        "suggested": False,
                        "confirmed": False,
                    }
                )
            if key_field is not None:
                update["key_field"] = key_field
            if match_by_id is not None:
                update["match_by_id"] = match_by_id

            if not update:
                return current.model_copy()
            slots[index] = current.model_copy(update=update)
            self._commit(slots)
            return slots[index].model_copy()

    async def assign_column(
        self, slot_id: str, column: Optional[str], confirm: bool = False
    ) -> CaptionSlot:
        """Manually set (or clear, with ``None``) the column of a slot."""
        return await self.update_slot(
            slot_id, column=column, clear_column=column is None, confirm=confirm
        )

    async def rename_caption(self, slot_id: str, caption: str) -> CaptionSlot:
        """Change a slot's caption; a changed caption needs re-confirmation."""
        return await self.update_slot(slot_id, caption=caption)

    async def set_flags(
        self,
        slot_id: str,
        key_field: Optional[bool] = None,
        match_by_id: Optional[bool] = None,
    ) -> CaptionSlot:
        """Update the importer flags of a slot."""
        return await self.update_slot(slot_id, key_field=key_field, match_by_id=match_by_id)

    async def add_slot(
        self, caption: str = "", key_field: bool = False, match_by_id: bool = False
    ) -> CaptionSlot:
        """Append a new, unassigned slot after the existing ones."""
        async with self._lock:
            self._check_unique([s.caption for s in self._slots] + [caption])
            order = max((s.order for s in self._slots), default=-1) + 1
            slot = CaptionSlot(
                id=f"slot-{self._slot_counter}",
                caption=caption,
                order=order,
                key_field=key_field,
                match_by_id=match_by_id,
            )
            self._slot_counter += 1
            self._commit(list(self._slots) + [slot])
            return slot.model_copy()

    async def remove_slot(self, slot_id: str) -> None:
        """Delete a slot."""
        async with self._lock:
            slots = list(self._slots)
            index = self._index_of(slots, slot_id)
            removed = slots.pop(index)
            self._commit(slots)
            logger.info(f"Removed caption slot '{removed.caption}'")

    async def set_date_format(self, date_format: Union[DateFormat, str]) -> None:
        """Change the Start Date format and re-run validation."""
        async with self._lock:
            self.validator = ValidationEngine(date_format)
            self._commit(list(self._slots))

    # Validation and export

    async def validate(self) -> Optional[ValidationReport]:
        """The current validation report, or None until every caption is confirmed."""
        async with self._lock:
            self._refresh_validation()
            return self.validation_report

    async def fix_cell(self, caption: str, row_number: int, value: str) -> Optional[ValidationIssue]:
        """
        Correct one mapped value and recheck only that caption.

        Args:
            caption: Caption whose column holds the value
            row_number: 1-based file row number, as reported in issues
            value: Replacement value

        Returns:
            The caption's remaining issue, or None if it is now clean
        """
        async with self._lock:
            index = self._index_of_caption(self._slots, caption)
            if index is None:
                raise SlotNotFoundError(f"No caption slot named '{caption}'")
            slot = self._slots[index]
            if slot.column is None:
                raise UnassignedSlotError(f"Caption '{caption}' has no column")
            column = self._column(slot.column)

            data_index = row_number - 1 - (1 if self.has_header else 0)
            data_rows = self.data_rows
            if data_index < 0 or data_index >= len(data_rows):
                raise ValueError(f"Row {row_number} is not a data row")

            row_index = data_index + (1 if self.has_header else 0)
            rows = [list(r) for r in self.rows]
            row = rows[row_index]
            if len(row) <= column.index:
                row.extend([""] * (column.index + 1 - len(row)))
            old_value = row[column.index]
            row[column.index] = value
            self.rows = rows

            first = next(
                (r[column.index] for r in self.data_rows if column.index < len(r) and r[column.index]),
                None,
            )
            slots = list(self._slots)
            slots[index] = slot.model_copy(update={"sample": first})
            self._commit(slots, revalidate=False)

            issue = self.validator.validate_caption(
                slot.caption, column.index, self.rows, self.has_header
            )
            if self.validation_report is not None:
                issues = [i for i in self.validation_report.issues if i.caption != slot.caption]
                if issue is not None:
                    issues.append(issue)
                order = {s.caption: s.order for s in self._slots}
                issues.sort(key=lambda i: order.get(i.caption, 0))
                self.validation_report = ValidationReport(issues=issues, summary=summarize(issues))

            logger.info(
                f"Fixed {caption} in row {row_number}: {old_value!r} -> {value!r}"
            )
            return issue

    async def export(self) -> ExportResult:
        """
        Build the output document from confirmed mappings.

        Raises:
            ExportBlockedError: If any non-empty caption is unconfirmed, or
                nothing is confirmed
        """
        async with self._lock:
            total = self.total_captions
            confirmed = self.confirmed_count
            if confirmed == 0 or confirmed != total or not self.is_loaded:
                raise ExportBlockedError(confirmed, total)

            effective = [
                s
                for s in sorted(self._slots, key=lambda s: s.order)
                if s.has_caption and s.confirmed and s.column
            ]
            header = [s.caption for s in effective]
            indices = [self._column(s.column).index for s in effective]
            projected = [
                [row[i] if i < len(row) else "" for i in indices] for row in self.data_rows
            ]
            content = serialize_delimited(projected, header, Delimiter.COMMA)

            base = PurePath(self.file_name).stem if self.file_name else "mapped-output"
            result = ExportResult(
                content=content,
                file_name=f"{base}-mapped.csv",
                header=header,
                row_count=len(projected),
            )

        logger.info(
            f"Exported {result.file_name}: {len(header)} headers, {result.row_count} rows"
        )
        return result

    def snapshot(self) -> dict:
        """Serializable view of the session for API responses."""
        return {
            "id": self.id,
            "version": self.version,
            "file_name": self.file_name,
            "has_header": self.has_header,
            "delimiter": self.delimiter.value,
            "date_format": self.validator.date_format.value,
            "row_count": len(self.data_rows),
            "columns": [c.model_dump(mode="json") for c in self.columns],
            "slots": [s.model_dump(mode="json") for s in self.slots],
            "confirmed": self.confirmed_count,
            "total": self.total_captions,
            "validation": (
                self.validation_report.model_dump(mode="json")
                if self.validation_report is not None
                else None
            ),
        }
