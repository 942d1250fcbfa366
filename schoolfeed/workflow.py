"""Paged bulk-submission workflow for marks and attendance entry."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .const import (
	FIELD_MARKS,
	LABEL_CONTINUE,
	LABEL_SUBMIT_ALL,
	MSG_ALL_SUBMITTED,
	MSG_INVALID_ENTRIES,
	MSG_LOAD_FAILED,
	MSG_MARKS_RANGE,
	MSG_MISSING_ENTRIES,
	MSG_NO_ENTRIES,
	MSG_PAGE_SUBMITTED,
	MSG_SUBMIT_FAILED,
	MSG_SUBMIT_IN_PROGRESS,
	REASON_BUSY,
	REASON_CLOSED,
	REASON_CONNECTION,
	REASON_MISSING,
	REASON_NOT_READY,
	REASON_SERVER,
	STUDENTS_PER_PAGE,
)
from .exceptions import (
	SchoolFeedConnectionError,
	SchoolFeedError,
	SchoolFeedSubmissionError,
	SchoolFeedValidationError,
)
from .models import CompletionSummary, RosterEntry, SessionContext, SubmissionBatch, SubmitResult
from . import paging, validation

_LOGGER = logging.getLogger(__name__)

Sink = Callable[[SubmissionBatch], Awaitable[SubmitResult]]
RosterProvider = Callable[[], Awaitable[List[RosterEntry]]]
Summarizer = Callable[[Dict[str, Dict[str, str]]], CompletionSummary]
Notifier = Callable[[str, bool], None]
InitialValues = Callable[[RosterEntry], Dict[str, str]]


class WorkflowState(str, Enum):
	IDLE = "idle"
	VALIDATING = "validating"
	SUBMITTING = "submitting"
	PAGE_ADVANCED = "page_advanced"
	COMPLETED = "completed"
	FAILED = "failed"
	NO_ENTRIES = "no_entries"
	LOAD_FAILED = "load_failed"


@dataclass
class SubmitOutcome:
	"""What happened on one submit attempt."""
	state: WorkflowState
	message: str
	page_index: int
	is_final: bool = False
	reason: Optional[str] = None
	summary: Optional[CompletionSummary] = None
	error: Optional[SchoolFeedError] = None

	@property
	def accepted(self) -> bool:
		return self.state in (WorkflowState.PAGE_ADVANCED, WorkflowState.COMPLETED)

	@property
	def should_exit(self) -> bool:
		"""The caller should leave the entry screen."""
		return self.state == WorkflowState.COMPLETED


class PagedSubmissionWorkflow:
	"""Drive entry, validation and page-by-page submission over a roster.

	Pages advance only after the sink acknowledges the current page. A
	failed submission leaves the page index and entered values untouched so
	the user can correct and retry.
	"""

	def __init__(
		self,
		sink: Sink,
		required_fields: Iterable[str],
		session: SessionContext,
		page_size: int = STUDENTS_PER_PAGE,
		summarize: Optional[Summarizer] = None,
		initial_values: Optional[InitialValues] = None,
		notify: Optional[Notifier] = None,
		entry_label: str = "entries",
		title: str = "Entries",
	) -> None:
		if page_size <= 0:
			raise ValueError(f"page_size must be positive, got {page_size}")
		self._sink = sink
		self._required_fields: Tuple[str, ...] = tuple(required_fields)
		self.session = session
		self.page_size = page_size
		self._summarize = summarize
		self._initial_values = initial_values
		self._notify = notify
		self.entry_label = entry_label
		self.title = title

		self._roster: List[RosterEntry] = []
		self._roster_ids: set = set()
		self._values: Dict[str, Dict[str, str]] = {}
		self._submitted: Dict[str, Dict[str, str]] = {}
		self._page_index = 1
		self._total_pages = 0
		self._state = WorkflowState.NO_ENTRIES
		self._closed = False
		self.last_outcome: Optional[SubmitOutcome] = None
		self.last_summary: Optional[CompletionSummary] = None

		self._edit_version = 0
		self._page_cache: Optional[Tuple[int, List[RosterEntry]]] = None
		self._complete_cache: Optional[Tuple[int, int, bool]] = None

	# Roster

	def load_roster(self, roster: Sequence[RosterEntry]) -> None:
		"""Start a fresh run over roster; pagination resets to page 1."""
		self._reset(roster)
		if not self._roster:
			self._state = WorkflowState.NO_ENTRIES
			self._publish(MSG_NO_ENTRIES, True)
		else:
			self._state = WorkflowState.IDLE
		_LOGGER.debug(f"Loaded roster of {len(self._roster)} into {self._total_pages} page(s) of {self.page_size}")

	def _reset(self, roster: Sequence[RosterEntry]) -> None:
		self._roster = list(roster)
		self._roster_ids = {entry.entity_id for entry in self._roster}
		self._total_pages = paging.compute_total_pages(len(self._roster), self.page_size)
		self._page_index = 1
		self._submitted = {}
		self._values = {}
		self.last_outcome = None
		self.last_summary = None
		if self._initial_values:
			for entry in self._roster:
				initial = self._initial_values(entry)
				if initial:
					self._values[entry.entity_id] = dict(initial)
		self._page_cache = None
		self._touch()

	async def load_from(self, provider: RosterProvider) -> bool:
		"""Load the roster from an async provider; failure leaves no partial roster."""
		try:
			roster = await provider()
		except SchoolFeedError as e:
			_LOGGER.error(f"Failed to load roster: {e}")
			return self._load_failed(str(e))
		except Exception as e:
			_LOGGER.exception("Unexpected error loading roster")
			return self._load_failed(str(e) or type(e).__name__)
		if self._closed:
			_LOGGER.debug("Roster arrived after close, ignoring")
			return False
		self.load_roster(roster)
		return bool(self._roster)

	def _load_failed(self, detail: str) -> bool:
		self._reset([])
		self._state = WorkflowState.LOAD_FAILED
		self._publish(f"{MSG_LOAD_FAILED}: {detail}", True)
		return False

	# Read-only views

	@property
	def state(self) -> WorkflowState:
		return self._state

	@property
	def roster(self) -> List[RosterEntry]:
		return list(self._roster)

	@property
	def page_index(self) -> int:
		return self._page_index

	@property
	def total_pages(self) -> int:
		return self._total_pages

	@property
	def required_fields(self) -> Tuple[str, ...]:
		return self._required_fields

	@property
	def is_last_page(self) -> bool:
		return self._total_pages > 0 and self._page_index == self._total_pages

	@property
	def progress(self) -> float:
		return paging.progress(self._page_index, self._total_pages)

	@property
	def submit_label(self) -> str:
		return LABEL_SUBMIT_ALL.format(title=self.title) if self.is_last_page else LABEL_CONTINUE

	@property
	def page_entities(self) -> List[RosterEntry]:
		if self._page_cache is None or self._page_cache[0] != self._page_index:
			entities = paging.slice_for_page(self._roster, self._page_index, self.page_size)
			self._page_cache = (self._page_index, entities)
		return list(self._page_cache[1])

	@property
	def page_complete(self) -> bool:
		"""Whether the current page can be submitted; recomputed only after edits or paging."""
		key = (self._page_index, self._edit_version)
		if self._complete_cache is None or self._complete_cache[:2] != key:
			complete = validation.page_is_complete(self.page_entities, self._values, self._required_fields)
			self._complete_cache = (key[0], key[1], complete)
		return self._complete_cache[2]

	@property
	def field_values(self) -> Dict[str, Dict[str, str]]:
		return {entity_id: dict(values) for entity_id, values in self._values.items()}

	@property
	def submitted_values(self) -> Dict[str, Dict[str, str]]:
		return {entity_id: dict(values) for entity_id, values in self._submitted.items()}

	def get_value(self, entity_id: str, field_name: str) -> Optional[str]:
		return self._values.get(entity_id, {}).get(field_name)

	# Editing

	def set_value(self, entity_id: str, field_name: str, value: Any) -> bool:
		"""Record an entered value. Returns whether it passes its rule."""
		if self._closed:
			_LOGGER.debug(f"Ignoring edit for {entity_id} after close")
			return False
		if entity_id not in self._roster_ids:
			_LOGGER.error(f"Cannot set {field_name} for unknown entity {entity_id!r}")
			return False
		if self._state in (WorkflowState.SUBMITTING, WorkflowState.COMPLETED):
			_LOGGER.warning(f"Ignoring edit for {entity_id} while {self._state.value}")
			return False

		text = value.value if isinstance(value, Enum) else ("" if value is None else str(value))
		self._values.setdefault(entity_id, {})[field_name] = text
		self._touch()

		valid = validation.validate_field(field_name, text)
		if not valid:
			self._publish(self._field_message(field_name), True)
		return valid

	def clear_value(self, entity_id: str, field_name: str) -> None:
		values = self._values.get(entity_id)
		if values and field_name in values:
			del values[field_name]
			if not values:
				del self._values[entity_id]
			self._touch()

	# Submission

	async def submit(self) -> SubmitOutcome:
		"""Validate and submit the current page."""
		if self._closed:
			return self._outcome(self._state, "Workflow is closed", reason=REASON_CLOSED)
		if self._state == WorkflowState.SUBMITTING:
			return self._outcome(WorkflowState.SUBMITTING, MSG_SUBMIT_IN_PROGRESS, reason=REASON_BUSY)
		if self._state != WorkflowState.IDLE:
			return self._outcome(self._state, f"Nothing to submit ({self._state.value})", reason=REASON_NOT_READY)

		self._state = WorkflowState.VALIDATING
		entities = self.page_entities
		failure = validation.first_failure(entities, self._values, self._required_fields)
		if failure is not None:
			reason, entity_id, field_name = failure
			template = MSG_MISSING_ENTRIES if reason == REASON_MISSING else MSG_INVALID_ENTRIES
			message = template.format(label=self.entry_label)
			self._state = WorkflowState.IDLE
			_LOGGER.debug(f"Page {self._page_index} rejected: {reason} {field_name} for {entity_id}")
			return self._finish(self._outcome(
				WorkflowState.IDLE,
				message,
				reason=reason,
				error=SchoolFeedValidationError(message, reason, entity_id),
			))

		batch = SubmissionBatch(
			page_index=self._page_index,
			total_pages=self._total_pages,
			entries={entity.entity_id: dict(self._values.get(entity.entity_id, {})) for entity in entities},
			roster=entities,
		)
		self._state = WorkflowState.SUBMITTING
		_LOGGER.info(f"Submitting page {batch.page_index}/{batch.total_pages} ({len(batch)} entries, final={batch.is_final})")

		error: Optional[SchoolFeedSubmissionError] = None
		try:
			result = await self._sink(batch)
		except asyncio.CancelledError:
			# page index and values stay as they were so the page can be resent
			_LOGGER.warning(f"Submission of page {batch.page_index} was cancelled")
			self._state = WorkflowState.IDLE
			raise
		except SchoolFeedConnectionError as e:
			error = SchoolFeedSubmissionError(str(e), REASON_CONNECTION)
		except SchoolFeedError as e:
			error = SchoolFeedSubmissionError(str(e), REASON_SERVER)
		except Exception as e:
			_LOGGER.exception(f"Unexpected error submitting page {batch.page_index}")
			error = SchoolFeedSubmissionError(str(e) or type(e).__name__, REASON_CONNECTION)
		else:
			if not result.success:
				error = SchoolFeedSubmissionError(result.message or "server rejected the submission", REASON_SERVER)

		if self._closed:
			_LOGGER.debug(f"Page {batch.page_index} finished after close, discarding result")
			return self._outcome(self._state, "Workflow is closed", is_final=batch.is_final, reason=REASON_CLOSED)

		if error is not None:
			return self._fail(batch, error)
		if batch.is_final:
			return self._complete(batch)
		return self._advance(batch)

	def close(self) -> None:
		"""Tear down; late completions become no-ops."""
		self._closed = True
		self._values = {}
		self._submitted = {}
		_LOGGER.debug("Workflow closed")

	# Transitions

	def _fail(self, batch: SubmissionBatch, error: SchoolFeedSubmissionError) -> SubmitOutcome:
		_LOGGER.warning(f"Page {batch.page_index} submission failed ({error.reason}): {error}")
		self._state = WorkflowState.IDLE
		message = MSG_SUBMIT_FAILED.format(label=self.title.lower(), reason=error)
		return self._finish(self._outcome(
			WorkflowState.FAILED,
			message,
			is_final=batch.is_final,
			reason=error.reason,
			error=error,
		))

	def _advance(self, batch: SubmissionBatch) -> SubmitOutcome:
		for entity_id in batch.entity_ids:
			self._submitted[entity_id] = self._values.pop(entity_id, {})
		self._page_index = paging.advance(self._page_index)
		self._touch()
		self._state = WorkflowState.IDLE
		_LOGGER.info(f"Page {batch.page_index} accepted, moving to page {self._page_index}")
		return self._finish(self._outcome(
			WorkflowState.PAGE_ADVANCED,
			MSG_PAGE_SUBMITTED.format(title=self.title),
		))

	def _complete(self, batch: SubmissionBatch) -> SubmitOutcome:
		for entity_id in batch.entity_ids:
			self._submitted[entity_id] = self._values.pop(entity_id, {})
		summary = self._summarize(self._submitted) if self._summarize else None

		self._values = {}
		self._submitted = {}
		self._page_index = 1
		self._touch()
		self._state = WorkflowState.COMPLETED
		self.last_summary = summary

		message = MSG_ALL_SUBMITTED.format(label=self.title.lower())
		if summary is not None:
			message = f"{message}\n\n{summary}"
		_LOGGER.info(f"All {batch.total_pages} page(s) submitted")
		return self._finish(self._outcome(
			WorkflowState.COMPLETED,
			message,
			is_final=True,
			summary=summary,
		))

	# Helpers

	def _outcome(self, state: WorkflowState, message: str, **kwargs: Any) -> SubmitOutcome:
		return SubmitOutcome(state=state, message=message, page_index=self._page_index, **kwargs)

	def _finish(self, outcome: SubmitOutcome) -> SubmitOutcome:
		self.last_outcome = outcome
		self._publish(outcome.message, not outcome.accepted)
		return outcome

	def _field_message(self, field_name: str) -> str:
		if field_name == FIELD_MARKS:
			return MSG_MARKS_RANGE
		return f"Invalid {field_name}"

	def _touch(self) -> None:
		self._edit_version += 1

	def _publish(self, message: str, is_error: bool) -> None:
		if self._notify is None or self._closed:
			return
		try:
			self._notify(message, is_error)
		except Exception:
			_LOGGER.exception("Message callback failed")
