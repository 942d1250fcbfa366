"""Settings loaded from the environment and an optional .env file."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from .const import (
	DEFAULT_BASE_URL,
	DEFAULT_MAX_RETRIES,
	DEFAULT_REQUEST_TIMEOUT,
	DEFAULT_RETRY_DELAY,
	DEFAULT_SESSION_FILE,
	STUDENTS_PER_PAGE,
)

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "SCHOOLFEED_"


@dataclass(frozen=True)
class Settings:
	base_url: str = DEFAULT_BASE_URL
	timeout: float = DEFAULT_REQUEST_TIMEOUT
	max_retries: int = DEFAULT_MAX_RETRIES
	retry_delay: float = DEFAULT_RETRY_DELAY
	page_size: int = STUDENTS_PER_PAGE
	session_file: Path = Path(DEFAULT_SESSION_FILE).expanduser()


def _read(name: str, cast, default, minimum=None):
	raw = os.environ.get(ENV_PREFIX + name)
	if raw is None or raw.strip() == "":
		return default
	try:
		value = cast(raw.strip())
	except ValueError:
		_LOGGER.warning(f"Ignoring invalid {ENV_PREFIX}{name}={raw!r}, using {default}")
		return default
	if minimum is not None and value < minimum:
		_LOGGER.warning(f"{ENV_PREFIX}{name}={raw!r} is below {minimum}, using {default}")
		return default
	return value


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
	"""Read settings from SCHOOLFEED_* variables, loading env_file (or ./.env) first.

	Variables already set in the environment win over the file.
	"""
	if env_file is not None:
		load_dotenv(env_file)
	else:
		load_dotenv(Path.cwd() / ".env")

	return Settings(
		base_url=_read("BASE_URL", str, DEFAULT_BASE_URL).rstrip("/"),
		timeout=_read("TIMEOUT", float, float(DEFAULT_REQUEST_TIMEOUT), minimum=0.1),
		max_retries=_read("MAX_RETRIES", int, DEFAULT_MAX_RETRIES, minimum=0),
		retry_delay=_read("RETRY_DELAY", float, DEFAULT_RETRY_DELAY, minimum=0),
		page_size=_read("PAGE_SIZE", int, STUDENTS_PER_PAGE, minimum=1),
		session_file=Path(_read("SESSION_FILE", str, DEFAULT_SESSION_FILE)).expanduser(),
	)
