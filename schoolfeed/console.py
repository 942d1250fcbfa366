"""Interactive console for entering exam marks and attendance.

Usage:
    python -m schoolfeed marks --section 3 --exam-schedules schedules.json [--subject 7]
    python -m schoolfeed attendance --section 3 [--date 2024-05-01]

Settings come from SCHOOLFEED_* variables or a .env file; the signed-in user
is read from the session file written at login.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional

from .client import SchoolFeedClient
from .config import Settings, load_settings
from .const import FIELD_MARKS, FIELD_REMARKS, FIELD_STATUS
from .exceptions import SchoolFeedError
from .feeds import (
	create_attendance_workflow,
	create_marks_workflow,
	pending_subjects,
	schedule_for_subject,
	start_workflow,
)
from .models import AttendanceStatus, ExamSchedule, Subject
from .storage import SessionStore
from .workflow import PagedSubmissionWorkflow, WorkflowState

_LOGGER = logging.getLogger(__name__)

InputFunc = Callable[[str], str]

STATUS_SHORTCUTS = {
	"P": AttendanceStatus.PRESENT,
	"L": AttendanceStatus.LATE,
	"A": AttendanceStatus.ABSENT,
}


def print_message(message: str, is_error: bool) -> None:
	print(f"{'❌' if is_error else '✅'} {message}")


def prompt_marks_page(workflow: PagedSubmissionWorkflow, input_func: InputFunc = input) -> None:
	"""Ask for marks and remarks of every student on the current page."""
	for entity in workflow.page_entities:
		current = workflow.get_value(entity.entity_id, FIELD_MARKS) or ""
		while True:
			raw = input_func(f"  {entity} marks [{current}]: ").strip() or current
			if workflow.set_value(entity.entity_id, FIELD_MARKS, raw) and raw:
				break
		remarks = input_func("    remarks (optional): ").strip()
		if remarks:
			workflow.set_value(entity.entity_id, FIELD_REMARKS, remarks)


def prompt_attendance_page(workflow: PagedSubmissionWorkflow, input_func: InputFunc = input) -> None:
	"""Ask for P/L/A per student; enter keeps the current status."""
	for entity in workflow.page_entities:
		current = workflow.get_value(entity.entity_id, FIELD_STATUS) or ""
		while True:
			raw = input_func(f"  {entity} [P/L/A] ({current or 'unset'}): ").strip().upper()
			if not raw and current:
				break
			status = STATUS_SHORTCUTS.get(raw[:1]) if raw else None
			if status is not None:
				workflow.set_value(entity.entity_id, FIELD_STATUS, status)
				break
			print("    Please answer P, L or A")


async def run_entry_loop(
	workflow: PagedSubmissionWorkflow,
	prompt_page: Callable[[PagedSubmissionWorkflow, InputFunc], None],
	input_func: InputFunc = input,
) -> bool:
	"""Prompt and submit page by page until the batch completes or the user gives up."""
	if workflow.state != WorkflowState.IDLE:
		return False

	while True:
		print(f"\n📄 Page {workflow.page_index} of {workflow.total_pages}")
		prompt_page(workflow, input_func)
		input_func(f"Press enter to {workflow.submit_label.lower()}... ")
		outcome = await workflow.submit()
		if outcome.should_exit:
			return True
		if outcome.accepted:
			continue
		if outcome.state == WorkflowState.FAILED:
			answer = input_func("Retry this page? [Y/n]: ").strip().lower()
			if answer in ("n", "no"):
				return False


def _load_schedules(path: Path) -> List[ExamSchedule]:
	try:
		raw = json.loads(path.read_text(encoding="utf-8"))
	except (OSError, json.JSONDecodeError) as e:
		raise SchoolFeedError(f"Could not read exam schedules from {path}: {e}") from e
	if isinstance(raw, dict):
		raw = raw.get("schedules") or []
	return [ExamSchedule.from_dict(item) for item in raw]


def choose_subject(subjects: List[Subject], input_func: InputFunc = input) -> Optional[Subject]:
	if not subjects:
		return None
	print("\n📚 Subjects waiting for marks:")
	for i, subject in enumerate(subjects, 1):
		print(f"   {i}. {subject.name}")
	while True:
		raw = input_func("Select subject: ").strip()
		if raw.isdigit() and 1 <= int(raw) <= len(subjects):
			return subjects[int(raw) - 1]
		print("   Please enter one of the numbers above")


async def run_marks(args, settings: Settings, store: SessionStore, input_func: InputFunc = input) -> int:
	await store.async_load()
	session = store.session_context(class_id=args.class_id, section_id=args.section, section_name=args.section_name)
	schedules = _load_schedules(Path(args.exam_schedules))

	known_subjects = store.subjects() or [
		Subject(id=schedule.subject_id, name=schedule.subject_name or schedule.subject_id)
		for schedule in schedules
	]
	subjects = pending_subjects(schedules, known_subjects)
	if args.subject:
		subjects = [subject for subject in subjects if subject.id == str(args.subject)]
		subject = subjects[0] if subjects else None
	else:
		subject = choose_subject(subjects, input_func)
	if subject is None:
		print("ℹ️  No subjects are waiting for marks")
		return 1

	schedule = schedule_for_subject(schedules, subject.id)
	async with SchoolFeedClient(
		settings.base_url,
		token=session.token,
		timeout=settings.timeout,
		max_retries=settings.max_retries,
		retry_delay=settings.retry_delay,
	) as client:
		workflow = create_marks_workflow(client, session, schedule, page_size=settings.page_size, notify=print_message)
		print(f"\n📝 Marks entry for {subject.name}, section {session.section_name or session.section_id}")
		if not await start_workflow(workflow, client):
			return 1
		try:
			return 0 if await run_entry_loop(workflow, prompt_marks_page, input_func) else 1
		finally:
			workflow.close()


async def run_attendance(args, settings: Settings, store: SessionStore, input_func: InputFunc = input) -> int:
	await store.async_load()
	session = store.session_context(class_id=args.class_id, section_id=args.section, section_name=args.section_name)
	attendance_date = args.date or date.today()
	async with SchoolFeedClient(
		settings.base_url,
		token=session.token,
		timeout=settings.timeout,
		max_retries=settings.max_retries,
		retry_delay=settings.retry_delay,
	) as client:
		workflow = create_attendance_workflow(
			client, session, attendance_date, page_size=settings.page_size, notify=print_message
		)
		print(f"\n🗓️  Attendance for {attendance_date}, section {session.section_name or session.section_id}")
		if not await start_workflow(workflow, client):
			return 1
		try:
			return 0 if await run_entry_loop(workflow, prompt_attendance_page, input_func) else 1
		finally:
			workflow.close()


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="schoolfeed", description="Enter exam marks or attendance page by page")
	parser.add_argument("--env-file", help="Path to a .env file with SCHOOLFEED_* settings")
	parser.add_argument("--session-file", help="Session file written at login")
	parser.add_argument("--debug", action="store_true", help="Enable debug logging")

	subparsers = parser.add_subparsers(dest="command", required=True)
	for name in ("marks", "attendance"):
		sub = subparsers.add_parser(name)
		sub.add_argument("--section", required=True, help="Section id")
		sub.add_argument("--section-name", help="Section name for display")
		sub.add_argument("--class-id", help="Class id")

	marks = subparsers.choices["marks"]
	marks.add_argument("--exam-schedules", required=True, help="JSON file with the exam's subject schedules")
	marks.add_argument("--subject", help="Subject id; prompts when omitted")

	attendance = subparsers.choices["attendance"]
	attendance.add_argument("--date", type=date.fromisoformat, help="Attendance date (YYYY-MM-DD), default today")
	return parser


def main(argv: Optional[List[str]] = None) -> int:
	args = build_parser().parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.debug else logging.WARNING,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)
	settings = load_settings(args.env_file)
	store = SessionStore(args.session_file or settings.session_file)
	runner = run_marks if args.command == "marks" else run_attendance
	try:
		return asyncio.run(runner(args, settings, store))
	except SchoolFeedError as e:
		print(f"❌ {e}")
		return 1
	except KeyboardInterrupt:
		print("\n👋 Cancelled")
		return 130


if __name__ == "__main__":
	sys.exit(main())
