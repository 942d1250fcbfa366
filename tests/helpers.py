"""Shared test doubles."""

import json

from schoolfeed.models import RosterEntry, SessionContext


class MockResponse:
	"""Simple mock response class."""
	def __init__(self, status, json_data=None, text_data=None):
		self.status = status
		if text_data is None:
			text_data = json.dumps(json_data) if json_data is not None else ""
		self._text_data = text_data
		self.headers = {}

	async def text(self):
		return self._text_data

	async def __aenter__(self):
		return self

	async def __aexit__(self, exc_type, exc_val, exc_tb):
		pass


def make_roster(count, prefix="s"):
	return [RosterEntry(entity_id=f"{prefix}{i}", display_name=f"Student {i}", user_id=f"u{i}") for i in range(1, count + 1)]


def make_session(**kwargs):
	defaults = {"user_id": "7", "school_id": "1", "section_id": "3", "section_name": "A"}
	defaults.update(kwargs)
	return SessionContext(**defaults)
