"""Marks and attendance flavours of the paged submission workflow."""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union

from .client import SchoolFeedClient, format_attendance_date
from .const import FIELD_MARKS, FIELD_STATUS, STUDENTS_PER_PAGE
from .exceptions import SchoolFeedDataError
from .models import (
	AttendanceStatus,
	CompletionSummary,
	ExamSchedule,
	RosterEntry,
	SessionContext,
	SubmissionBatch,
	SubmitResult,
	Subject,
)
from .validation import parse_marks
from .workflow import Notifier, PagedSubmissionWorkflow

_LOGGER = logging.getLogger(__name__)

MARKS_REQUIRED_FIELDS = (FIELD_MARKS,)
ATTENDANCE_REQUIRED_FIELDS = (FIELD_STATUS,)


def pending_subjects(schedules: Iterable[ExamSchedule], subjects: Iterable[Subject]) -> List[Subject]:
	"""Subjects that still have an exam schedule waiting for marks."""
	pending_ids = {schedule.subject_id for schedule in schedules if not schedule.is_marks_submitted}
	return [subject for subject in subjects if subject.id in pending_ids]


def schedule_for_subject(schedules: Iterable[ExamSchedule], subject_id: str) -> Optional[ExamSchedule]:
	for schedule in schedules:
		if schedule.subject_id == str(subject_id):
			return schedule
	return None


def summarize_marks(values: Dict[str, Dict[str, str]], passing_marks: Optional[float] = None) -> CompletionSummary:
	"""Entered/passed/failed counts plus average, highest and lowest marks."""
	marks = [m for m in (parse_marks(v.get(FIELD_MARKS)) for v in values.values()) if m is not None]
	counts = {"Entered": len(marks)}
	if passing_marks is not None:
		passed = sum(1 for m in marks if m >= passing_marks)
		counts["Passed"] = passed
		counts["Failed"] = len(marks) - passed
	stats: Dict[str, float] = {}
	if marks:
		stats["Average"] = round(sum(marks) / len(marks), 2)
		stats["Highest"] = max(marks)
		stats["Lowest"] = min(marks)
	return CompletionSummary(counts=counts, stats=stats)


def summarize_attendance(values: Dict[str, Dict[str, str]]) -> CompletionSummary:
	"""Present/Late/Absent counts."""
	counts = {status.label: 0 for status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE, AttendanceStatus.ABSENT)}
	for entry in values.values():
		status = entry.get(FIELD_STATUS)
		if status in AttendanceStatus._value2member_map_:
			counts[AttendanceStatus(status).label] += 1
	return CompletionSummary(counts=counts)


def create_marks_workflow(
	client: SchoolFeedClient,
	session: SessionContext,
	schedule: ExamSchedule,
	page_size: int = STUDENTS_PER_PAGE,
	notify: Optional[Notifier] = None,
) -> PagedSubmissionWorkflow:
	"""Workflow that submits marks for one exam schedule, a page at a time."""

	async def sink(batch: SubmissionBatch) -> SubmitResult:
		return await client.submit_exam_marks(schedule.id, batch, submitted_by=session.user_id)

	return PagedSubmissionWorkflow(
		sink=sink,
		required_fields=MARKS_REQUIRED_FIELDS,
		session=session,
		page_size=page_size,
		summarize=lambda values: summarize_marks(values, schedule.passing_marks),
		notify=notify,
		entry_label="marks",
		title="Marks",
	)


def create_attendance_workflow(
	client: SchoolFeedClient,
	session: SessionContext,
	attendance_date: Union[date, datetime, str],
	page_size: int = STUDENTS_PER_PAGE,
	notify: Optional[Notifier] = None,
	default_status: Optional[AttendanceStatus] = AttendanceStatus.PRESENT,
) -> PagedSubmissionWorkflow:
	"""Workflow that submits attendance for the session's section.

	Every student starts as default_status; pass None to require an explicit choice.
	An unparseable attendance_date raises SchoolFeedDataError before anything is sent.
	"""
	if not session.section_id:
		raise SchoolFeedDataError("Attendance needs a section in the session context")
	attendance_date = format_attendance_date(attendance_date)

	async def sink(batch: SubmissionBatch) -> SubmitResult:
		return await client.submit_attendance(session.section_id, attendance_date, batch)

	def initial_values(entry: RosterEntry) -> Dict[str, str]:
		return {FIELD_STATUS: default_status.value} if default_status else {}

	return PagedSubmissionWorkflow(
		sink=sink,
		required_fields=ATTENDANCE_REQUIRED_FIELDS,
		session=session,
		page_size=page_size,
		summarize=summarize_attendance,
		initial_values=initial_values,
		notify=notify,
		entry_label="attendance status",
		title="Attendance",
	)


async def start_workflow(
	workflow: PagedSubmissionWorkflow,
	client: SchoolFeedClient,
	section_id: Optional[str] = None,
) -> bool:
	"""Load the section roster into a workflow; also used when the subject changes."""
	section_id = section_id or workflow.session.section_id
	if not section_id:
		raise SchoolFeedDataError("No section selected")
	_LOGGER.debug(f"Starting {workflow.title.lower()} workflow for section {section_id}")
	return await workflow.load_from(lambda: client.get_students_by_section(section_id))
