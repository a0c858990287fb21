# The content manager needs the config, which needs some core constants.
# Keep the content manager import below the others.

from .type_keys import (
	TypeKey, TypeKind, TypeLike, Extension, MimeType, Intermediate, WILDCARD, UNKNOWN,
	type_key, source_type_of,
)
from .registry import LoaderEntry, LoaderRegistry, Stage
from .resolver import HandlerNotFoundError, PathResolver
from .download_cache import DownloadCache, DownloadError, DownloadRequest, RawAsset
from .pipeline import Pipeline, PipelineContext
from .defaults import (
	RAW_ASSET, TEXT, JSON_DOCUMENT, XML_DOCUMENT, YAML_DOCUMENT, register_default_loaders,
)
from .content_manager import CacheStats, ContentManager

__all__ = [
	"CacheStats", "ContentManager", "DownloadCache", "DownloadError", "DownloadRequest",
	"Extension", "HandlerNotFoundError", "Intermediate", "JSON_DOCUMENT", "LoaderEntry",
	"LoaderRegistry", "MimeType", "PathResolver", "Pipeline", "PipelineContext", "RAW_ASSET",
	"RawAsset", "Stage", "TEXT", "TypeKey", "TypeKind", "TypeLike", "UNKNOWN", "WILDCARD",
	"XML_DOCUMENT", "YAML_DOCUMENT", "register_default_loaders", "source_type_of", "type_key",
]
