"""Local persisted session data written at login."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .const import STORE_KEY_SUBJECTS, STORE_KEY_TOKEN, STORE_KEY_USER_DATA
from .exceptions import SchoolFeedDataError
from .models import SessionContext, Subject

_LOGGER = logging.getLogger(__name__)


class SessionStore:
	"""JSON file holding the keys the app persists for a signed-in user.

	Values are stored as they were received (userData is a dict, not a JSON
	string).
	"""

	def __init__(self, path: Union[str, Path]) -> None:
		self.path = Path(path).expanduser()
		self._data: Optional[Dict[str, Any]] = None

	def load(self) -> Dict[str, Any]:
		"""Load the file once and cache it; a missing file is an empty store."""
		if self._data is None:
			if not self.path.exists():
				_LOGGER.debug(f"No session file at {self.path}")
				self._data = {}
			else:
				try:
					self._data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
				except json.JSONDecodeError as e:
					raise SchoolFeedDataError(f"Session file {self.path} is not valid JSON") from e
				if not isinstance(self._data, dict):
					raise SchoolFeedDataError(f"Session file {self.path} does not hold an object")
		return dict(self._data)

	def save(self) -> None:
		data = self._data or {}
		self.path.parent.mkdir(parents=True, exist_ok=True)
		tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
		tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
		tmp_path.replace(self.path)
		_LOGGER.debug(f"Saved session file {self.path}")

	async def async_load(self) -> Dict[str, Any]:
		"""Load off the event loop."""
		return await asyncio.to_thread(self.load)

	def get(self, key: str, default: Any = None) -> Any:
		return self.load().get(key, default)

	def set(self, key: str, value: Any) -> None:
		self.load()
		self._data[key] = value

	def session_context(
		self,
		class_id: Optional[str] = None,
		section_id: Optional[str] = None,
		section_name: Optional[str] = None,
	) -> SessionContext:
		"""Build the session context for a workflow from the stored user data."""
		user_data = _maybe_json(self.get(STORE_KEY_USER_DATA))
		if not isinstance(user_data, dict):
			raise SchoolFeedDataError("No signed-in user found in session store")
		try:
			return SessionContext.from_user_data(
				user_data,
				token=self.get(STORE_KEY_TOKEN),
				class_id=class_id,
				section_id=section_id,
				section_name=section_name,
			)
		except ValueError as e:
			raise SchoolFeedDataError(str(e)) from e

	def subjects(self) -> List[Subject]:
		"""Subjects taught at the user's school."""
		raw = _maybe_json(self.get(STORE_KEY_SUBJECTS)) or []
		subjects: List[Subject] = []
		for item in raw:
			try:
				subjects.append(Subject.from_dict(item))
			except (KeyError, TypeError) as e:
				_LOGGER.warning(f"Skipping malformed subject {item!r}: {e}")
		return subjects


def _maybe_json(value: Any) -> Any:
	"""Values copied from the app's secure storage may still be JSON strings."""
	if isinstance(value, str):
		try:
			return json.loads(value)
		except json.JSONDecodeError:
			return value
	return value
