"""Data models for school feed entities."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class AttendanceStatus(str, Enum):
	"""Attendance status a teacher can record for a student."""
	PRESENT = "PRESENT"
	ABSENT = "ABSENT"
	LATE = "LATE"

	@property
	def label(self) -> str:
		return self.value.capitalize()


@dataclass(frozen=True)
class RosterEntry:
	"""One student to be graded or marked in a workflow run."""
	entity_id: str
	display_name: str
	roll_no: Optional[str] = None
	user_id: Optional[str] = None

	def __str__(self) -> str:
		if self.roll_no:
			return f"{self.display_name} (Roll {self.roll_no})"
		return self.display_name


@dataclass(frozen=True)
class SessionContext:
	"""The acting user and the class/section selectors for a workflow."""
	user_id: str
	school_id: Optional[str] = None
	role: Optional[str] = None
	token: Optional[str] = None
	class_id: Optional[str] = None
	section_id: Optional[str] = None
	section_name: Optional[str] = None

	@classmethod
	def from_user_data(
		cls,
		user_data: Dict[str, Any],
		token: Optional[str] = None,
		class_id: Optional[str] = None,
		section_id: Optional[str] = None,
		section_name: Optional[str] = None,
	) -> "SessionContext":
		"""Build a context from the user info blob stored at login."""
		user_id = user_data.get("id") or user_data.get("userId")
		if user_id is None:
			raise ValueError("User data has no id")
		school_id = user_data.get("schoolId")
		return cls(
			user_id=str(user_id),
			school_id=str(school_id) if school_id is not None else None,
			role=user_data.get("role"),
			token=token,
			class_id=class_id,
			section_id=section_id,
			section_name=section_name,
		)


@dataclass
class SubmissionBatch:
	"""The entries of one page at submit time."""
	page_index: int
	total_pages: int
	entries: Dict[str, Dict[str, str]]
	roster: List[RosterEntry] = field(default_factory=list)

	@property
	def is_final(self) -> bool:
		return self.page_index == self.total_pages

	@property
	def entity_ids(self) -> List[str]:
		return list(self.entries.keys())

	def __len__(self) -> int:
		return len(self.entries)


@dataclass
class SubmitResult:
	"""Acknowledgement from the remote sink for one page."""
	success: bool
	message: Optional[str] = None


@dataclass
class CompletionSummary:
	"""Counts and statistics shown once a whole batch is submitted."""
	counts: Dict[str, int] = field(default_factory=dict)
	stats: Dict[str, float] = field(default_factory=dict)

	@property
	def total(self) -> int:
		return sum(self.counts.values())

	def __str__(self) -> str:
		lines = ["Summary:"]
		lines.extend(f"{name}: {count}" for name, count in self.counts.items())
		lines.extend(f"{name}: {value:g}" for name, value in self.stats.items())
		return "\n".join(lines)


@dataclass(frozen=True)
class Subject:
	"""A subject taught at the school."""
	id: str
	name: str

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "Subject":
		return cls(id=str(data["id"]), name=str(data.get("name") or data["id"]))


@dataclass
class ExamSchedule:
	"""One subject paper of an exam, as returned by the exam master data."""
	id: str
	subject_id: str
	subject_name: Optional[str] = None
	max_marks: Optional[float] = None
	passing_marks: Optional[float] = None
	is_marks_submitted: bool = False
	exam_datetime: Optional[datetime] = None
	class_id: Optional[str] = None

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "ExamSchedule":
		exam_datetime = None
		raw_datetime = data.get("exam_datetime")
		if raw_datetime:
			try:
				exam_datetime = datetime.fromisoformat(str(raw_datetime).replace("Z", "+00:00"))
			except ValueError:
				exam_datetime = None
		class_id = data.get("class_id")
		return cls(
			id=str(data["id"]),
			subject_id=str(data["subject_id"]),
			subject_name=data.get("subject_name"),
			max_marks=data.get("max_marks"),
			passing_marks=data.get("passing_marks"),
			is_marks_submitted=bool(data.get("is_marks_submitted", False)),
			exam_datetime=exam_datetime,
			class_id=str(class_id) if class_id is not None else None,
		)

	def __str__(self) -> str:
		state = "Marks Submitted" if self.is_marks_submitted else "Pending"
		return f"{self.subject_name or self.subject_id} [{state}]"
