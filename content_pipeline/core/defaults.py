"""
Built-in loaders, registered as defaults so that anything registered
explicitly always takes precedence over them.
"""

import json
import typing as t
from xml.etree import ElementTree

from loguru import logger
import yaml

from content_pipeline.core.download_cache import RawAsset
from content_pipeline.core.registry import LoaderRegistry, Stage
from content_pipeline.core.type_keys import Intermediate

if t.TYPE_CHECKING:
	from content_pipeline.core.pipeline import PipelineContext


RAW_ASSET = Intermediate("RawAsset")
"""The raw content as returned by a download."""

TEXT = Intermediate("Text")
JSON_DOCUMENT = Intermediate("JsonDocument")
XML_DOCUMENT = Intermediate("XmlDocument")
YAML_DOCUMENT = Intermediate("YamlDocument")

TEXT_SOURCES = (".txt", "text/plain")
JSON_SOURCES = (".json", "application/json")
XML_SOURCES = (".xml", "application/xml", "text/xml")
YAML_SOURCES = (".yml", ".yaml", "application/x-yaml", "application/yaml", "text/yaml")


async def load_raw_asset(value: t.Any, context: "PipelineContext") -> RawAsset:
	"""
	Downloads the context's source, unless that already happened.
	"""
	if isinstance(value, RawAsset):
		return value
	if context.raw_asset is not None:
		return context.raw_asset
	if context.manager is None:
		raise RuntimeError("Can not download anything without a content manager")

	return await context.manager.download(value if isinstance(value, str) else context.source)


async def _get_text(value: t.Any, context: "PipelineContext") -> t.Union[str, bytes]:
	# An importer either receives the source reference, whose content
	# has to be fetched, or content that is already in memory.
	if isinstance(value, str) and context.source is not None and value == context.source:
		raw = await load_raw_asset(value, context)
		context.raw_asset = raw
		value = raw
	if isinstance(value, RawAsset):
		if value.is_reference:
			raise ValueError(f"{value!r} was only stored by reference and has no content")
		return value.content
	return value


def _as_str(content: t.Union[str, bytes]) -> str:
	return content.decode("utf-8") if isinstance(content, bytes) else content


async def import_text(value: t.Any, context: "PipelineContext") -> str:
	return _as_str(await _get_text(value, context))


async def import_json(value: t.Any, context: "PipelineContext") -> t.Any:
	return json.loads(await _get_text(value, context))


async def import_xml(value: t.Any, context: "PipelineContext") -> ElementTree.ElementTree:
	return ElementTree.ElementTree(ElementTree.fromstring(await _get_text(value, context)))


async def import_yaml(value: t.Any, context: "PipelineContext") -> t.Any:
	return yaml.safe_load(await _get_text(value, context))


def register_default_loaders(registry: LoaderRegistry) -> None:
	"""
	Registers the built-in loader and importers as defaults in
	``registry``.
	"""
	registry.register(Stage.LOAD, "*", RAW_ASSET, load_raw_asset, default=True)
	registry.register(Stage.IMPORT, TEXT_SOURCES, TEXT, import_text, default=True)
	registry.register(Stage.IMPORT, JSON_SOURCES, JSON_DOCUMENT, import_json, default=True)
	registry.register(Stage.IMPORT, XML_SOURCES, XML_DOCUMENT, import_xml, default=True)
	registry.register(Stage.IMPORT, YAML_SOURCES, YAML_DOCUMENT, import_yaml, default=True)
	logger.debug(f"Registered default loaders, registry now holds {len(registry)} entries")
