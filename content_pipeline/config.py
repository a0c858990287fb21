
from dataclasses import dataclass
import os
import sys
import typing as t

from dotenv import find_dotenv, load_dotenv
from loguru import logger

from content_pipeline.core.download_cache import DEFAULT_REFERENCE_FAMILIES
from content_pipeline.core.resolver import DEFAULT_MAX_CHAIN_LENGTH


ENV_PREFIX = "CP_"

_STDERR_FMT = (
	"<green>{time:MMM DD HH:mm:ss.SSS}</green> | <level>{level:<8}</level> | "
	"<cyan>{name}</cyan>:<cyan>{function}</cyan>@<cyan>{line}</cyan> - "
	"<level>{message}</level>"
)


def _convert_bool_env_var(v: t.Optional[str]) -> bool:
	if v == "0":
		return False
	return bool(v)


@dataclass
class Config():
	"""
	Stores content pipeline configuration.

	`base_url`: URL relative source references are resolved against.
		`None` for the current working directory.
	`cache_downloads`: Whether downloaded raw content is kept around.
	`reference_families`: MIME type families whose content is only
		stored by URL.
	`http_timeout`: Timeout for HTTP downloads, in seconds. `None` to
		wait forever.
	`max_chain_length`: Longest chain of loaders the resolver will
		consider.
	`debug_level`: 0 to log nothing, 1 to log debug messages, 2 to
		log everything down to traces.
	"""
	base_url: t.Optional[str] = None
	cache_downloads: bool = True
	reference_families: t.Tuple[str, ...] = DEFAULT_REFERENCE_FAMILIES
	http_timeout: t.Optional[float] = 30.0
	max_chain_length: int = DEFAULT_MAX_CHAIN_LENGTH
	debug_level: int = 0

	@classmethod
	def from_env(cls, load_env_file: bool = True) -> "Config":
		"""
		Creates a config from `CP_`-prefixed environment variables,
		after loading them from a `.env` file if `load_env_file` is
		set. Unset variables keep their default.
		"""
		if load_env_file:
			load_dotenv(find_dotenv(usecwd=True))

		cfg = cls()
		if (v := os.getenv(ENV_PREFIX + "BASE_URL")):
			cfg.base_url = v
		if (v := os.getenv(ENV_PREFIX + "CACHE_DOWNLOADS")) is not None:
			cfg.cache_downloads = _convert_bool_env_var(v)
		if (v := os.getenv(ENV_PREFIX + "REFERENCE_FAMILIES")) is not None:
			cfg.reference_families = tuple(f.strip() for f in v.split(",") if f.strip())
		if (v := os.getenv(ENV_PREFIX + "HTTP_TIMEOUT")):
			cfg.http_timeout = float(v) if float(v) > 0 else None
		if (v := os.getenv(ENV_PREFIX + "MAX_CHAIN_LENGTH")):
			cfg.max_chain_length = int(v)
		if (v := os.getenv(ENV_PREFIX + "DEBUG_LEVEL")):
			cfg.debug_level = int(v)

		return cfg


def setup_logging(debug_level: int) -> None:
	"""
	Replaces loguru's default sink. With a debug level above 0, log
	messages are written to stderr; with one above 1, traces as well.
	"""
	logger.remove()

	if debug_level > 0 and sys.stderr:
		logger.add(sys.stderr, format=_STDERR_FMT, level="TRACE" if debug_level > 1 else "DEBUG")
