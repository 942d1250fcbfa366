"""Split a roster into fixed-size pages."""

from typing import List, Sequence, TypeVar

from .const import STUDENTS_PER_PAGE

T = TypeVar("T")


def compute_total_pages(roster_size: int, page_size: int = STUDENTS_PER_PAGE) -> int:
	"""Return the number of pages needed for roster_size entries (ceiling division)."""
	if page_size <= 0:
		raise ValueError(f"page_size must be positive, got {page_size}")
	if roster_size <= 0:
		return 0
	return -(-roster_size // page_size)


def clamp_page_index(page_index: int, total_pages: int) -> int:
	"""Clamp a 1-based page index into [1, total_pages]."""
	if total_pages <= 0:
		return 1
	return max(1, min(page_index, total_pages))


def slice_for_page(roster: Sequence[T], page_index: int, page_size: int = STUDENTS_PER_PAGE) -> List[T]:
	"""Return the entries shown on a 1-based page, in roster order."""
	total_pages = compute_total_pages(len(roster), page_size)
	if total_pages == 0:
		return []
	page_index = clamp_page_index(page_index, total_pages)
	start = (page_index - 1) * page_size
	return list(roster[start:start + page_size])


def advance(page_index: int) -> int:
	"""Next page index; callers check against total_pages first."""
	return page_index + 1


def progress(page_index: int, total_pages: int) -> float:
	"""Fraction shown on the progress bar."""
	if total_pages <= 0:
		return 0.0
	return clamp_page_index(page_index, total_pages) / total_pages
