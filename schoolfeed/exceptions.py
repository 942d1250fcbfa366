"""Custom exceptions for the school feed client."""

from typing import Optional


class SchoolFeedError(Exception):
	"""Base exception for school feed errors."""
	pass


class SchoolFeedAPIError(SchoolFeedError):
	"""API request failed."""

	def __init__(self, message: str, status: Optional[int] = None):
		super().__init__(message)
		self.status = status


class SchoolFeedConnectionError(SchoolFeedError):
	"""Connection to the school server failed."""
	pass


class SchoolFeedDataError(SchoolFeedError):
	"""Data parsing or validation error."""
	pass


class SchoolFeedDataLoadError(SchoolFeedError):
	"""Roster or other input data could not be loaded."""
	pass


class SchoolFeedValidationError(SchoolFeedError):
	"""Entries on the current page are missing or invalid."""

	def __init__(self, message: str, reason: str, entity_id: Optional[str] = None):
		super().__init__(message)
		self.reason = reason
		self.entity_id = entity_id


class SchoolFeedSubmissionError(SchoolFeedError):
	"""A page submission was rejected or could not be delivered."""

	def __init__(self, message: str, reason: str):
		super().__init__(message)
		self.reason = reason
