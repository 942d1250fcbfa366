#!/usr/bin/env python3
"""Tests for the paged submission workflow state machine."""

import asyncio
from unittest.mock import AsyncMock

from schoolfeed.const import FIELD_MARKS, FIELD_STATUS, REASON_BUSY, REASON_CONNECTION, REASON_INVALID, REASON_MISSING, REASON_SERVER
from schoolfeed.exceptions import SchoolFeedConnectionError, SchoolFeedDataLoadError, SchoolFeedValidationError
from schoolfeed.models import CompletionSummary, SubmitResult
from schoolfeed.workflow import PagedSubmissionWorkflow, WorkflowState

from helpers import make_roster, make_session


def make_workflow(roster_size=25, sink=None, **kwargs):
	sink = sink or AsyncMock(return_value=SubmitResult(success=True))
	messages = []
	workflow = PagedSubmissionWorkflow(
		sink=sink,
		required_fields=[FIELD_MARKS],
		session=make_session(),
		notify=lambda message, is_error: messages.append((message, is_error)),
		entry_label="marks",
		title="Marks",
		**kwargs,
	)
	workflow.load_roster(make_roster(roster_size))
	return workflow, sink, messages


def fill_page(workflow, value="75"):
	for entity in workflow.page_entities:
		assert workflow.set_value(entity.entity_id, FIELD_MARKS, value)


def test_roster_of_25_walks_three_pages_to_completion():
	workflow, sink, messages = make_workflow(25)
	assert workflow.total_pages == 3
	assert workflow.page_index == 1
	assert [e.entity_id for e in workflow.page_entities] == [f"s{i}" for i in range(1, 11)]

	fill_page(workflow)
	outcome = asyncio.run(workflow.submit())
	assert outcome.state == WorkflowState.PAGE_ADVANCED
	assert outcome.is_final is False
	assert workflow.page_index == 2
	assert workflow.state == WorkflowState.IDLE
	batch = sink.call_args[0][0]
	assert batch.is_final is False
	assert batch.entity_ids == [f"s{i}" for i in range(1, 11)]

	fill_page(workflow)
	asyncio.run(workflow.submit())
	assert workflow.page_index == 3
	assert len(workflow.page_entities) == 5
	assert workflow.is_last_page

	fill_page(workflow)
	outcome = asyncio.run(workflow.submit())
	assert outcome.state == WorkflowState.COMPLETED
	assert outcome.is_final is True
	assert outcome.should_exit
	assert sink.call_args[0][0].is_final is True
	assert workflow.state == WorkflowState.COMPLETED
	assert workflow.page_index == 1
	assert workflow.field_values == {}
	assert sink.await_count == 3
	assert messages[-1] == ("All marks submitted successfully!", False)


def test_non_final_success_clears_only_that_page():
	workflow, _, _ = make_workflow(25)
	fill_page(workflow)
	# A value typed ahead for a student on page 2
	workflow.set_value("s11", FIELD_MARKS, "40")
	asyncio.run(workflow.submit())
	assert workflow.field_values == {"s11": {FIELD_MARKS: "40"}}
	assert set(workflow.submitted_values) == {f"s{i}" for i in range(1, 11)}
	assert workflow.total_pages == 3


def test_missing_entry_rejected_locally():
	workflow, sink, messages = make_workflow(25)
	fill_page(workflow)
	workflow.set_value("s4", FIELD_MARKS, "")
	before = workflow.field_values

	outcome = asyncio.run(workflow.submit())
	assert outcome.state == WorkflowState.IDLE
	assert outcome.reason == REASON_MISSING
	assert isinstance(outcome.error, SchoolFeedValidationError)
	assert outcome.error.entity_id == "s4"
	assert outcome.message == "Please enter marks for all students on this page"
	assert sink.await_count == 0
	assert workflow.field_values == before
	assert workflow.page_index == 1
	assert messages[-1] == (outcome.message, True)


def test_out_of_range_entry_rejected_with_distinct_message():
	workflow, sink, messages = make_workflow(5)
	fill_page(workflow)
	assert workflow.set_value("s2", FIELD_MARKS, "101") is False
	assert messages[-1] == ("Marks must be between 0 and 100", True)

	outcome = asyncio.run(workflow.submit())
	assert outcome.reason == REASON_INVALID
	assert outcome.message == "Please correct invalid marks entries"
	assert sink.await_count == 0


def test_server_reported_failure_keeps_state():
	sink = AsyncMock(return_value=SubmitResult(success=False, message="exam locked"))
	workflow, _, messages = make_workflow(25, sink=sink)
	fill_page(workflow)
	before = workflow.field_values

	outcome = asyncio.run(workflow.submit())
	assert outcome.state == WorkflowState.FAILED
	assert outcome.reason == REASON_SERVER
	assert "exam locked" in outcome.message
	assert workflow.state == WorkflowState.IDLE
	assert workflow.page_index == 1
	assert workflow.field_values == before
	assert messages[-1][1] is True

	# Retry succeeds once the server accepts
	sink.return_value = SubmitResult(success=True)
	outcome = asyncio.run(workflow.submit())
	assert outcome.state == WorkflowState.PAGE_ADVANCED
	assert workflow.page_index == 2


def test_raised_sink_error_keeps_state():
	sink = AsyncMock(side_effect=SchoolFeedConnectionError("timed out"))
	workflow, _, _ = make_workflow(12, sink=sink)
	fill_page(workflow)
	before = workflow.field_values

	outcome = asyncio.run(workflow.submit())
	assert outcome.state == WorkflowState.FAILED
	assert outcome.reason == REASON_CONNECTION
	assert workflow.page_index == 1
	assert workflow.field_values == before


def test_unexpected_sink_exception_is_contained():
	sink = AsyncMock(side_effect=RuntimeError("boom"))
	workflow, _, _ = make_workflow(3, sink=sink)
	fill_page(workflow)
	outcome = asyncio.run(workflow.submit())
	assert outcome.state == WorkflowState.FAILED
	assert workflow.state == WorkflowState.IDLE


def test_exact_multiple_final_page_is_the_last_index():
	workflow, sink, _ = make_workflow(20)
	assert workflow.total_pages == 2
	fill_page(workflow)
	assert asyncio.run(workflow.submit()).is_final is False
	fill_page(workflow)
	outcome = asyncio.run(workflow.submit())
	assert outcome.is_final is True
	assert outcome.state == WorkflowState.COMPLETED


def test_empty_roster_never_submits():
	workflow, sink, messages = make_workflow(0)
	assert workflow.state == WorkflowState.NO_ENTRIES
	assert workflow.total_pages == 0
	outcome = asyncio.run(workflow.submit())
	assert outcome.state == WorkflowState.NO_ENTRIES
	assert sink.await_count == 0
	assert messages[0] == ("No students found for this section", True)


def test_submit_while_submitting_is_rejected():
	release = None

	async def slow_sink(batch):
		await release.wait()
		return SubmitResult(success=True)

	workflow, _, _ = make_workflow(15, sink=slow_sink)
	fill_page(workflow)

	async def scenario():
		nonlocal release
		release = asyncio.Event()
		first = asyncio.create_task(workflow.submit())
		await asyncio.sleep(0)
		assert workflow.state == WorkflowState.SUBMITTING
		assert workflow.set_value("s1", FIELD_MARKS, "10") is False
		second = await workflow.submit()
		release.set()
		return await first, second

	first, second = asyncio.run(scenario())
	assert second.reason == REASON_BUSY
	assert first.state == WorkflowState.PAGE_ADVANCED
	assert workflow.page_index == 2


def test_completion_after_close_is_ignored():
	release = None

	async def slow_sink(batch):
		await release.wait()
		return SubmitResult(success=True)

	workflow, _, messages = make_workflow(15, sink=slow_sink)
	fill_page(workflow)

	async def scenario():
		nonlocal release
		release = asyncio.Event()
		task = asyncio.create_task(workflow.submit())
		await asyncio.sleep(0)
		workflow.close()
		release.set()
		return await task

	count_before = len(messages)
	outcome = asyncio.run(scenario())
	assert outcome.accepted is False
	assert workflow.page_index == 1
	assert len(messages) == count_before


def test_summary_is_reported_on_completion():
	summary = CompletionSummary(counts={"Entered": 3})
	workflow, _, _ = make_workflow(3, summarize=lambda values: summary)
	fill_page(workflow)
	outcome = asyncio.run(workflow.submit())
	assert outcome.summary is summary
	assert workflow.last_summary is summary
	assert "Summary:\nEntered: 3" in outcome.message


def test_summary_sees_every_submitted_page():
	seen = {}

	def summarize(values):
		seen.update(values)
		return CompletionSummary(counts={"Entered": len(values)})

	workflow, _, _ = make_workflow(12, summarize=summarize)
	fill_page(workflow, "60")
	asyncio.run(workflow.submit())
	fill_page(workflow, "70")
	asyncio.run(workflow.submit())
	assert len(seen) == 12
	assert seen["s1"] == {FIELD_MARKS: "60"}
	assert seen["s12"] == {FIELD_MARKS: "70"}


def test_page_completeness_is_memoized_on_edits():
	workflow, _, _ = make_workflow(12)
	assert workflow.page_complete is False
	fill_page(workflow)
	assert workflow.page_complete is True
	cached = workflow._complete_cache
	assert workflow.page_complete is True
	assert workflow._complete_cache is cached
	workflow.clear_value("s1", FIELD_MARKS)
	assert workflow.page_complete is False


def test_reload_resets_pagination():
	workflow, _, _ = make_workflow(25)
	fill_page(workflow)
	asyncio.run(workflow.submit())
	assert workflow.page_index == 2
	workflow.load_roster(make_roster(4, prefix="t"))
	assert workflow.page_index == 1
	assert workflow.total_pages == 1
	assert workflow.field_values == {}


def test_unknown_entity_edit_is_refused():
	workflow, _, _ = make_workflow(3)
	assert workflow.set_value("nobody", FIELD_MARKS, "50") is False
	assert workflow.field_values == {}


def test_submit_label_and_progress():
	workflow, _, _ = make_workflow(15)
	assert workflow.submit_label == "Submit & Continue"
	assert workflow.progress == 0.5
	fill_page(workflow)
	asyncio.run(workflow.submit())
	assert workflow.submit_label == "Submit All Marks"
	assert workflow.progress == 1.0


def test_load_from_failure_shows_no_partial_roster():
	workflow, sink, messages = make_workflow(5)
	provider = AsyncMock(side_effect=SchoolFeedDataLoadError("section not found"))
	loaded = asyncio.run(workflow.load_from(provider))
	assert loaded is False
	assert workflow.state == WorkflowState.LOAD_FAILED
	assert workflow.roster == []
	assert workflow.page_entities == []
	assert messages[-1] == ("Failed to load students: section not found", True)
	assert asyncio.run(workflow.submit()).state == WorkflowState.LOAD_FAILED
	assert sink.await_count == 0


def test_load_from_success():
	workflow, _, _ = make_workflow(0)
	provider = AsyncMock(return_value=make_roster(11))
	assert asyncio.run(workflow.load_from(provider)) is True
	assert workflow.state == WorkflowState.IDLE
	assert workflow.total_pages == 2


def test_attendance_status_enum_values_are_stored_as_text():
	from schoolfeed.models import AttendanceStatus

	workflow = PagedSubmissionWorkflow(
		sink=AsyncMock(return_value=SubmitResult(success=True)),
		required_fields=[FIELD_STATUS],
		session=make_session(),
	)
	workflow.load_roster(make_roster(1))
	assert workflow.set_value("s1", FIELD_STATUS, AttendanceStatus.LATE) is True
	assert workflow.get_value("s1", FIELD_STATUS) == "LATE"


def test_cancelled_submit_returns_to_idle():
	calls = []

	async def sink(batch):
		calls.append(batch.page_index)
		if len(calls) == 1:
			await asyncio.sleep(10)
		return SubmitResult(success=True)

	workflow, _, _ = make_workflow(15, sink=sink)
	fill_page(workflow, "64")

	async def scenario():
		try:
			await asyncio.wait_for(workflow.submit(), 0.01)
		except asyncio.TimeoutError:
			pass
		else:
			raise AssertionError("submit was not cancelled")
		assert workflow.state == WorkflowState.IDLE
		assert workflow.page_index == 1
		assert workflow.get_value("s1", FIELD_MARKS) == "64"
		assert workflow.set_value("s1", FIELD_MARKS, "65") is True
		return await workflow.submit()

	outcome = asyncio.run(scenario())
	assert outcome.state == WorkflowState.PAGE_ADVANCED
	assert calls == [1, 1]
	assert workflow.page_index == 2


def test_unexpected_load_error_is_contained():
	workflow, _, messages = make_workflow(5)
	provider = AsyncMock(side_effect=ValueError("bad row"))
	assert asyncio.run(workflow.load_from(provider)) is False
	assert workflow.state == WorkflowState.LOAD_FAILED
	assert workflow.roster == []
	assert messages[-1] == ("Failed to load students: bad row", True)


def test_edits_after_close_are_refused():
	workflow, _, _ = make_workflow(3)
	workflow.close()
	assert workflow.set_value("s1", FIELD_MARKS, "50") is False
	assert workflow.field_values == {}
