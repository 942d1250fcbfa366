"""Main client for the school management REST API."""

import asyncio
import json
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

import aiohttp

from .const import (
	ATTENDANCE_DATE_FORMAT,
	DEFAULT_BASE_URL,
	DEFAULT_HEADERS,
	DEFAULT_MAX_RETRIES,
	DEFAULT_REMARKS,
	DEFAULT_REQUEST_TIMEOUT,
	DEFAULT_RETRY_DELAY,
	ENDPOINT_STUDENTS_BY_SECTION,
	ENDPOINT_SUBMIT_ATTENDANCE,
	ENDPOINT_SUBMIT_EXAM_MARKS,
	FIELD_MARKS,
	FIELD_REMARKS,
	FIELD_STATUS,
)
from .exceptions import (
	SchoolFeedAPIError,
	SchoolFeedConnectionError,
	SchoolFeedDataError,
	SchoolFeedDataLoadError,
	SchoolFeedError,
)
from .models import RosterEntry, SubmissionBatch, SubmitResult
from .validation import parse_marks

_LOGGER = logging.getLogger(__name__)


class SchoolFeedClient:
	"""Client for the roster and submission endpoints."""

	def __init__(
		self,
		base_url: str = DEFAULT_BASE_URL,
		session: Optional[aiohttp.ClientSession] = None,
		token: Optional[str] = None,
		timeout: float = DEFAULT_REQUEST_TIMEOUT,
		max_retries: int = DEFAULT_MAX_RETRIES,
		retry_delay: float = DEFAULT_RETRY_DELAY,
	):
		"""Initialise client.

		Args:
			base_url: Root URL of the school API, e.g. http://host:8080/school
			session: Optional aiohttp session. If None, one is created on enter.
			token: Optional bearer token stored at login
			timeout: Total seconds allowed per request
			max_retries: Extra attempts after a transport failure
			retry_delay: Seconds to wait between attempts
		"""
		self.base_url = base_url.rstrip("/")
		self._session = session
		self._own_session = session is None
		self.token = token
		self.timeout = timeout
		self.max_retries = max(0, max_retries)
		self.retry_delay = retry_delay

	async def __aenter__(self):
		"""Async context manager entry."""
		if self._own_session:
			self._session = aiohttp.ClientSession()
		return self

	async def __aexit__(self, exc_type, exc_val, exc_tb):
		"""Async context manager exit."""
		if self._own_session and self._session:
			await self._session.close()
			self._session = None

	async def get_students_by_section(self, section_id: Union[str, int]) -> List[RosterEntry]:
		"""Get the student roster of a section.

		Args:
			section_id: Section to load

		Returns:
			Roster entries in server order

		Raises:
			SchoolFeedDataLoadError: the roster could not be fetched or the server reported failure
		"""
		try:
			data = await self._request_json(
				"GET",
				ENDPOINT_STUDENTS_BY_SECTION,
				params={"sectionId": str(section_id)},
			)
		except SchoolFeedError as e:
			raise SchoolFeedDataLoadError(f"Could not load students for section {section_id}: {e}") from e

		if not isinstance(data, dict) or not data.get("success"):
			message = data.get("message") if isinstance(data, dict) else None
			raise SchoolFeedDataLoadError(message or f"Server did not return students for section {section_id}")

		roster = self._parse_students(data.get("data") or [])
		_LOGGER.debug(f"Loaded {len(roster)} students for section {section_id}")
		return roster

	async def submit_exam_marks(
		self,
		exam_schedule_id: Union[str, int],
		batch: SubmissionBatch,
		submitted_by: Optional[Union[str, int]] = None,
	) -> SubmitResult:
		"""Submit one page of exam marks.

		Any 2xx response counts as accepted unless the body explicitly says otherwise.
		"""
		payload = {
			"marks": [
				{
					"studentId": _coerce_id(entity_id),
					"marks": _coerce_number(values.get(FIELD_MARKS)),
					"remarks": (values.get(FIELD_REMARKS) or "").strip() or DEFAULT_REMARKS,
				}
				for entity_id, values in batch.entries.items()
			],
			"metadata": {
				"submittedBy": _coerce_id(submitted_by) if submitted_by is not None else None,
				"isMarksSubmitted": batch.is_final,
			},
		}
		data = await self._request_json(
			"POST",
			ENDPOINT_SUBMIT_EXAM_MARKS,
			params={"examScId": str(exam_schedule_id)},
			payload=payload,
		)
		if isinstance(data, dict):
			for key in ("success", "ok"):
				if key in data and not data[key]:
					return SubmitResult(success=False, message=data.get("message"))
			return SubmitResult(success=True, message=data.get("message"))
		return SubmitResult(success=True)

	async def submit_attendance(
		self,
		section_id: Union[str, int],
		attendance_date: Union[date, datetime, str],
		batch: SubmissionBatch,
	) -> SubmitResult:
		"""Submit one page of attendance; the body must carry success=true."""
		user_ids = {entry.entity_id: entry.user_id for entry in batch.roster}
		payload = {
			"sectionId": _coerce_id(section_id),
			"attendanceDate": format_attendance_date(attendance_date),
			"records": [
				{
					"studentId": _coerce_id(user_ids.get(entity_id) or entity_id),
					"status": values.get(FIELD_STATUS),
				}
				for entity_id, values in batch.entries.items()
			],
			"isFinal": batch.is_final,
		}
		data = await self._request_json("POST", ENDPOINT_SUBMIT_ATTENDANCE, payload=payload)
		if not isinstance(data, dict):
			return SubmitResult(success=False, message="Unexpected response from attendance endpoint")
		return SubmitResult(success=bool(data.get("success")), message=data.get("message"))

	async def _request_json(
		self,
		method: str,
		path: str,
		params: Optional[Dict[str, str]] = None,
		payload: Optional[Dict[str, Any]] = None,
	) -> Any:
		"""Send a request and decode the JSON body.

		Transport errors and timeouts are retried up to max_retries times.
		HTTP error statuses are raised straight away.
		"""
		if not self._session:
			raise SchoolFeedAPIError("Client not properly initialised")

		url = f"{self.base_url}{path}"
		headers = DEFAULT_HEADERS.copy()
		if self.token:
			headers["Authorization"] = f"Bearer {self.token}"
		timeout = aiohttp.ClientTimeout(total=self.timeout)

		attempt = 0
		while True:
			attempt += 1
			try:
				async with self._session.request(method, url, params=params, json=payload, headers=headers, timeout=timeout) as resp:
					try:
						text = await resp.text()
					except UnicodeDecodeError as e:
						_LOGGER.error(f"Response from {path} could not be decoded: {e}")
						raise SchoolFeedDataError(f"Undecodable response from {path}") from e
					if resp.status < 200 or resp.status >= 300:
						_LOGGER.warning(f"{method} {path} failed: HTTP {resp.status}")
						raise SchoolFeedAPIError(f"{method} {path} failed: HTTP {resp.status}", status=resp.status)
					return _decode_body(text, path)
			except (aiohttp.ClientError, asyncio.TimeoutError) as e:
				if attempt > self.max_retries:
					raise SchoolFeedConnectionError(f"Connection error on {method} {path}: {str(e) or type(e).__name__}") from e
				_LOGGER.warning(f"{method} {path} attempt {attempt} failed ({str(e) or type(e).__name__}), retrying in {self.retry_delay}s")
				await asyncio.sleep(self.retry_delay)

	def _parse_students(self, items: List[Dict[str, Any]]) -> List[RosterEntry]:
		"""Parse student rows; rows without an id are skipped."""
		roster: List[RosterEntry] = []
		for item in items:
			if not isinstance(item, dict) or item.get("id") is None:
				_LOGGER.warning(f"Skipping student row without id: {item!r}")
				continue
			first = (item.get("firstName") or "").strip()
			last = (item.get("lastName") or "").strip()
			name = f"{first} {last}".strip() or f"Student {item['id']}"
			roll_no = item.get("rollNo")
			user_id = item.get("studentUserId")
			roster.append(RosterEntry(
				entity_id=str(item["id"]),
				display_name=name,
				roll_no=str(roll_no) if roll_no not in (None, "") else None,
				user_id=str(user_id) if user_id is not None else None,
			))
		return roster


def format_attendance_date(value: Union[date, datetime, str]) -> str:
	"""Format a date the way the attendance endpoint expects (YYYY-MM-DD)."""
	if isinstance(value, (date, datetime)):
		return value.strftime(ATTENDANCE_DATE_FORMAT)
	try:
		return datetime.strptime(value, ATTENDANCE_DATE_FORMAT).strftime(ATTENDANCE_DATE_FORMAT)
	except ValueError as e:
		raise SchoolFeedDataError(f"Invalid attendance date: {value!r}") from e


def _decode_body(text: str, path: str) -> Any:
	if not text or not text.strip():
		return {}
	try:
		return json.loads(text)
	except json.JSONDecodeError as e:
		_LOGGER.error(f"Response from {path} is not JSON: {text[:200]}...")
		raise SchoolFeedDataError(f"Invalid JSON response from {path}") from e


def _coerce_id(value: Any) -> Any:
	"""Send numeric ids as numbers, everything else unchanged."""
	if isinstance(value, str) and value.isdigit():
		return int(value)
	return value


def _coerce_number(value: Any) -> Optional[Union[int, float]]:
	number = parse_marks(value) if value not in (None, "") else None
	if number is None:
		return None
	return int(number) if number.is_integer() else number
