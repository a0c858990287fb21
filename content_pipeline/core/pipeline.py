
import inspect
import typing as t
from urllib.parse import urljoin

from loguru import logger

from content_pipeline.core.download_cache import RawAsset
from content_pipeline.core.registry import LoaderEntry, LoaderRegistry, Stage
from content_pipeline.core.resolver import DEFAULT_MAX_CHAIN_LENGTH, PathResolver
from content_pipeline.core.type_keys import TypeKey, TypeLike, type_key

if t.TYPE_CHECKING:
	from content_pipeline.core.content_manager import ContentManager


class PipelineContext:
	"""
	State of a single resolution. Created for each resolution and
	passed to every handler taking part in it.
	"""

	__slots__ = (
		"manager", "pipeline", "source", "source_type", "target_type", "stage", "options",
		"raw_asset", "intermediate", "result", "parent",
	)

	def __init__(
		self,
		manager: t.Optional["ContentManager"],
		pipeline: "Pipeline",
		source: t.Optional[str],
		source_type: TypeKey,
		target_type: TypeKey,
		options: t.Optional[t.Dict[str, t.Any]] = None,
		parent: t.Optional["PipelineContext"] = None,
	) -> None:
		self.manager = manager
		"""
		The content manager the resolution runs for. Handlers may use
		it to issue further loads or downloads.
		``None`` when the pipeline is run standalone.
		"""

		self.pipeline = pipeline

		self.source = source
		"""
		The source reference being loaded. Relative references found
		inside the content should be resolved against this, see
		``resolve_uri``.
		"""

		self.source_type = source_type
		"""
		The type of the value currently travelling through the
		pipeline. Advances with each step.
		"""

		self.target_type = target_type
		"""The type that was requested."""

		self.stage = Stage.PRELOAD
		"""The stage currently being run."""

		self.options: t.Dict[str, t.Any] = {} if options is None else options
		"""User options passed along with the load request."""

		self.raw_asset: t.Optional[RawAsset] = None
		"""Raw downloaded content, once something downloaded it."""

		self.intermediate: t.Any = None
		"""The output of the most recent step."""

		self.result: t.Any = None
		"""
		The final result. Handlers may set this to finish the
		resolution early.
		"""

		self.parent = parent
		"""The context of the resolution that started this one, if any."""

	def resolve_uri(self, ref: str) -> str:
		"""
		Resolves a reference found inside the content relative to this
		context's source.
		"""
		if self.source is None:
			return ref
		return urljoin(self.source, ref)

	def describe(self) -> str:
		return (
			f"stage: {self.stage.name.lower()!r}, sourceType: {self.source_type.name!r}, "
			f"targetType: {self.target_type.name!r}"
		)


class Pipeline:
	"""
	Resolves and runs chains of loaders out of a registry.
	"""

	def __init__(
		self, registry: LoaderRegistry, max_chain_length: int = DEFAULT_MAX_CHAIN_LENGTH
	) -> None:
		self.registry = registry
		self.resolver = PathResolver(registry, max_chain_length)

	def resolve(
		self,
		source_type: TypeLike,
		target_type: TypeLike,
		min_stage: Stage = Stage.LOAD,
	) -> t.List[LoaderEntry]:
		return self.resolver.resolve(source_type, target_type, min_stage)

	def can_resolve(self, source_type: TypeLike, target_type: TypeLike) -> bool:
		return self.resolver.can_resolve(source_type, target_type)

	async def execute(
		self, context: PipelineContext, chain: t.Optional[t.List[LoaderEntry]] = None
	) -> t.Any:
		"""
		Runs a resolution to completion and returns its result.

		``chain`` may be a chain previously resolved for the context's
		source and target type; it is resolved here otherwise. Each
		step is awaited before the next one is resolved from the type
		the step produced, until either the target type is reached or
		a handler sets ``context.result``.
		Exceptions raised by handlers are propagated as-is.
		"""
		if chain is None:
			chain = self.resolve(context.source_type, context.target_type)

		value: t.Any = context.source if context.intermediate is None else context.intermediate

		context.stage = Stage.PRELOAD
		value = await self._run_hooks(
			Stage.PRELOAD, context.source_type, context.target_type, value, context
		)

		while chain:
			entry = chain[0]
			node = context.source_type

			context.stage = Stage.PREPROCESS
			value = await self._run_hooks(Stage.PREPROCESS, node, entry.target_type, value, context)

			context.stage = entry.stage
			value = await self._invoke(entry, value, context)

			context.stage = Stage.POSTPROCESS
			value = await self._run_hooks(Stage.POSTPROCESS, node, entry.target_type, value, context)

			context.source_type = entry.target_type
			context.intermediate = value
			if isinstance(value, RawAsset):
				context.raw_asset = value

			if context.result is not None or context.source_type == context.target_type:
				break

			chain = self.resolve(context.source_type, context.target_type, entry.stage)

		if context.result is None:
			context.result = value

		return context.result

	async def run(
		self,
		source_type: TypeLike,
		target_type: TypeLike,
		value: t.Any,
		parent: t.Optional[PipelineContext] = None,
	) -> t.Any:
		"""
		Transforms the in-memory ``value`` of type ``source_type`` into
		``target_type``. Nothing is cached.
		If ``parent`` is given, the new resolution shares its manager,
		source and options.
		"""
		context = PipelineContext(
			None if parent is None else parent.manager,
			self,
			None if parent is None else parent.source,
			type_key(source_type),
			type_key(target_type),
			None if parent is None else parent.options,
			parent,
		)
		context.intermediate = value
		return await self.execute(context)

	async def _invoke(self, entry: LoaderEntry, value: t.Any, context: PipelineContext) -> t.Any:
		prev_intermediate = context.intermediate
		prev_result = context.result

		res = entry.handle(value, context)
		if inspect.isawaitable(res):
			res = await res

		if res is not None:
			return res

		# Handler stored its output on the context instead
		if context.result is not prev_result:
			return context.result
		if context.intermediate is not prev_intermediate:
			return context.intermediate
		if entry.stage is Stage.LOAD and context.raw_asset is not None:
			return context.raw_asset

		logger.trace(f"{entry!r} produced nothing ({context.describe()})")
		return None

	async def _run_hooks(
		self,
		stage: Stage,
		source_type: TypeKey,
		target_type: TypeKey,
		value: t.Any,
		context: PipelineContext,
	) -> t.Any:
		"""
		Runs all hooks of ``stage`` one after another. A hook returning
		something other than ``None`` replaces ``value`` for the hooks
		after it and the stage following them.
		"""
		for entry in self.registry.get_handlers(stage, source_type, target_type):
			res = entry.handle(value, context)
			if inspect.isawaitable(res):
				res = await res
			if res is not None:
				value = res
		return value
