
import typing as t

from loguru import logger

from content_pipeline.config import Config, setup_logging
from content_pipeline.core.content_manager import ContentManager
from content_pipeline.core.defaults import register_default_loaders
from content_pipeline.core.download_cache import DownloadCache
from content_pipeline.core.registry import LoaderRegistry


def initialize(
	config: t.Optional[Config] = None,
	registry: t.Optional[LoaderRegistry] = None,
	download_cache: t.Optional[DownloadCache] = None,
) -> ContentManager:
	"""
	Sets up logging and creates a content manager with the default
	loaders registered.
	``config`` defaults to one read from the environment. If
	``registry`` is given, the default loaders are added to it, so it
	should not already contain them.
	"""
	if config is None:
		config = Config.from_env()

	setup_logging(config.debug_level)

	if registry is None:
		registry = LoaderRegistry()
	register_default_loaders(registry)

	manager = ContentManager(registry, download_cache, config)
	logger.info(f"Content manager ready, resolving against {manager.downloads.base_url!r}")
	return manager
