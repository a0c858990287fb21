import asyncio
import typing as t

from loguru import logger

from content_pipeline.config import Config
from content_pipeline.core.download_cache import DownloadCache, DownloadRequest, RawAsset
from content_pipeline.core.pipeline import Pipeline, PipelineContext
from content_pipeline.core.registry import LoaderRegistry
from content_pipeline.core.resolver import HandlerNotFoundError
from content_pipeline.core.type_keys import MimeType, TypeKey, TypeLike, source_type_of, type_key


AssetSpec = t.Union[str, t.Sequence[str], t.Mapping[str, str]]


class CacheStats:
	"""
	Cheap dataclass for a snapshot of a content manager's caches.
	"""

	__slots__ = ("loaded", "loading", "downloads", "cache_hits")

	def __init__(self) -> None:
		self.loaded: int = 0
		"""The amount of artifacts in the cache."""

		self.loading: int = 0
		"""The amount of loads currently in flight."""

		self.downloads: int = 0
		"""The amount of entries in the download cache."""

		self.cache_hits: int = 0
		"""
		How often a load was answered straight from the artifact
		cache, summed over all artifacts currently in it.
		"""

	def copy(self) -> "CacheStats":
		c = CacheStats()
		c.loaded = self.loaded
		c.loading = self.loading
		c.downloads = self.downloads
		c.cache_hits = self.cache_hits
		return c

	def __eq__(self, o: object) -> bool:
		if isinstance(o, CacheStats):
			return (
				o.loaded == self.loaded and
				o.loading == self.loading and
				o.downloads == self.downloads and
				o.cache_hits == self.cache_hits
			)
		return NotImplemented

	def __repr__(self) -> str:
		return (
			f"<{self.__class__.__name__} loaded={self.loaded} loading={self.loading} "
			f"downloads={self.downloads} cache_hits={self.cache_hits}>"
		)


class _CacheEntry:
	__slots__ = ("item", "cache_hits")

	def __init__(self, item: t.Any) -> None:
		self.item = item
		self.cache_hits = 0


class ContentManager:
	"""
	Loads content of a requested type from source references, caching
	the results.

	Each artifact is identified by its target type and source reference.
	While an artifact is being loaded, all further requests for it
	join that same load; once it is loaded, they receive the cached
	artifact until it is unloaded.

	All loading methods must be called from within a running asyncio
	event loop.
	"""

	def __init__(
		self,
		registry: LoaderRegistry,
		download_cache: t.Optional[DownloadCache] = None,
		config: t.Optional[Config] = None,
	) -> None:
		self.config = Config() if config is None else config
		self.registry = registry
		self.pipeline = Pipeline(registry, self.config.max_chain_length)

		if download_cache is None:
			download_cache = DownloadCache(
				base_url = self.config.base_url,
				reference_families = self.config.reference_families,
				timeout = self.config.http_timeout,
				enabled = self.config.cache_downloads,
			)
		self.downloads = download_cache

		self.remap_url: t.Dict[str, str] = {}
		"""
		Source references that should be loaded from a different
		reference when requested.
		"""

		self._loaded: t.Dict[str, _CacheEntry] = {}
		self._loading: t.Dict[str, "asyncio.Task[t.Any]"] = {}

		# Loads that were in flight during an unload. Still joined by
		# new requests, but never cached.
		self._detached: t.Dict[str, "asyncio.Task[t.Any]"] = {}

	@staticmethod
	def make_cache_key(source: str, target_type: TypeLike) -> str:
		"""
		Returns the key the artifact of type ``target_type`` loaded
		from ``source`` is cached under.
		"""
		return f"{type_key(target_type).name}:{source}"

	def _remap(self, source: str) -> str:
		return self.remap_url.get(source, source)

	def load(
		self,
		source: str,
		target_type: TypeLike,
		options: t.Optional[t.Dict[str, t.Any]] = None,
	) -> "asyncio.Future[t.Any]":
		"""
		Loads ``source`` as ``target_type`` and returns a future
		resolving to the artifact.

		If the artifact is cached, the returned future is already
		done. If it is being loaded, the returned future follows that
		load. Otherwise, a new load is started.
		Each caller receives its own future; cancelling it does not
		stop the load for anyone else.

		``options`` are made available to all loader handlers, but do
		not take part in identifying the artifact.
		"""
		loop = asyncio.get_running_loop()

		source = self._remap(source)
		target = type_key(target_type)
		key = self.make_cache_key(source, target)

		if (entry := self._loaded.get(key)) is not None:
			entry.cache_hits += 1
			logger.trace(f"Cache hit on {key!r}")
			fut = loop.create_future()
			fut.set_result(entry.item)
			return fut

		pending = self._loading.get(key)
		if pending is None:
			pending = self._detached.get(key)
		if pending is not None:
			logger.trace(f"Joining pending load of {key!r}")
			return asyncio.shield(pending)

		logger.debug(f"[ContentManager] load {target.name}, {source}, {source_type_of(source).name}")
		task = loop.create_task(self._load(key, source, target, options))
		self._loading[key] = task
		return asyncio.shield(task)

	async def _load(
		self,
		key: str,
		source: str,
		target: TypeKey,
		options: t.Optional[t.Dict[str, t.Any]],
	) -> t.Any:
		task = asyncio.current_task()
		still_wanted = False
		try:
			result = await self._resolve(source, target, options)
		except Exception as e:
			logger.debug(f"Loading {key!r} failed: {e!r}")
			raise
		finally:
			# May have been detached by an unload in the meantime
			if self._loading.get(key) is task:
				del self._loading[key]
				still_wanted = True
			elif self._detached.get(key) is task:
				del self._detached[key]

		if still_wanted:
			self._loaded[key] = _CacheEntry(result)

		return result

	async def _resolve(
		self,
		source: str,
		target: TypeKey,
		options: t.Optional[t.Dict[str, t.Any]],
	) -> t.Any:
		context = PipelineContext(self, self.pipeline, source, source_type_of(source), target, options)

		chain = None
		not_found = None
		try:
			chain = self.pipeline.resolve(context.source_type, target)
		except HandlerNotFoundError as e:
			not_found = e

		if chain is None:
			# Maybe the content tells more about itself than its reference does.
			# Download it (once) and try again with its MIME type.
			raw = self.downloads.lookup(source)
			if raw is None:
				logger.debug(f"No loader for {context.describe()}, downloading {source!r}")
				raw = await self.downloads.download(source)

			mime = MimeType(raw.mime_type)
			if mime == context.source_type:
				raise not_found

			context.raw_asset = raw
			context.source_type = mime
			chain = self.pipeline.resolve(mime, target)

		return await self.pipeline.execute(context, chain)

	async def transform(
		self,
		value: t.Any,
		source_type: TypeLike,
		target_type: TypeLike,
		options: t.Optional[t.Dict[str, t.Any]] = None,
	) -> t.Any:
		"""
		Runs an in-memory ``value`` of type ``source_type`` through the
		pipeline, turning it into ``target_type``. The result is not
		cached.
		"""
		context = PipelineContext(
			self, self.pipeline, None, type_key(source_type), type_key(target_type), options
		)
		context.intermediate = value
		return await self.pipeline.execute(context)

	async def load_assets(
		self, spec: t.Mapping[TypeLike, AssetSpec]
	) -> t.Dict[TypeLike, t.Any]:
		"""
		Loads multiple assets concurrently. ``spec`` maps target types
		to either a single source reference, a sequence of them or a
		mapping of names to them. The returned dict has the same shape,
		with each reference replaced by its artifact.
		"""
		futures: t.Dict[TypeLike, t.Any] = {}
		for target, value in spec.items():
			if isinstance(value, str):
				futures[target] = self.load(value, target)
			elif isinstance(value, t.Mapping):
				futures[target] = {k: self.load(v, target) for k, v in value.items()}
			elif isinstance(value, t.Sequence):
				futures[target] = [self.load(v, target) for v in value]
			else:
				raise TypeError(f"Invalid asset specification for {target!r}: {value!r}")

		flat = []
		for v in futures.values():
			if isinstance(v, dict):
				flat.extend(v.values())
			elif isinstance(v, list):
				flat.extend(v)
			else:
				flat.append(v)
		await asyncio.gather(*flat)

		result: t.Dict[TypeLike, t.Any] = {}
		for target, v in futures.items():
			if isinstance(v, dict):
				result[target] = {k: f.result() for k, f in v.items()}
			elif isinstance(v, list):
				result[target] = [f.result() for f in v]
			else:
				result[target] = v.result()
		return result

	async def download(
		self, request: t.Union[str, t.Mapping[str, t.Any], DownloadRequest]
	) -> RawAsset:
		return await self.downloads.download(request)

	async def download_all(
		self, requests: t.Iterable[t.Union[str, t.Mapping[str, t.Any], DownloadRequest]]
	) -> t.List[RawAsset]:
		return await self.downloads.download_all(requests)

	def can_load(self, source: str, target_type: TypeLike) -> bool:
		"""
		Whether the pipeline knows a way of turning ``source`` into
		``target_type``, judging by the source's reference and, if it
		was already downloaded, its MIME type.
		Does not download anything.
		"""
		source = self._remap(source)
		if self.pipeline.can_resolve(source_type_of(source), target_type):
			return True

		raw = self.downloads.lookup(source)
		return raw is not None and self.pipeline.can_resolve(MimeType(raw.mime_type), target_type)

	def is_loaded(self, source: str, target_type: TypeLike) -> bool:
		return self.make_cache_key(self._remap(source), target_type) in self._loaded

	def is_loading(self, source: str, target_type: TypeLike) -> bool:
		key = self.make_cache_key(self._remap(source), target_type)
		return key in self._loading or key in self._detached

	def get_cache_stats(self) -> CacheStats:
		stats = CacheStats()
		stats.loaded = len(self._loaded)
		stats.loading = len(self._loading) + len(self._detached)
		stats.downloads = len(self.downloads)
		stats.cache_hits = sum(e.cache_hits for e in self._loaded.values())
		return stats

	@staticmethod
	def _dispose(key: str, item: t.Any) -> None:
		for name in ("unload", "destroy"):
			hook = getattr(item, name, None)
			if not callable(hook):
				continue
			try:
				hook()
			except Exception as e:
				logger.warning(f"[ContentManager] failed to unload asset at {key!r}: {e!r}")
			return

	def unload_asset(self, source: str, target_type: TypeLike) -> bool:
		"""
		Removes a single artifact from the cache, disposing of it.
		Returns whether it was cached.
		"""
		key = self.make_cache_key(self._remap(source), target_type)
		entry = self._loaded.pop(key, None)
		if entry is None:
			return False
		self._dispose(key, entry.item)
		return True

	def unload(self) -> None:
		"""
		Unloads all artifacts, disposing of each one that has an
		``unload`` or ``destroy`` method. Loads still in flight keep
		running and are still joined by new requests, but their results
		will not be cached.
		"""
		for key in list(self._loaded.keys()):
			entry = self._loaded.pop(key)
			self._dispose(key, entry.item)
		self._detached.update(self._loading)
		self._loading.clear()

	def clear(self) -> None:
		"""
		Unloads everything and empties the download cache as well.
		"""
		self.unload()
		self.downloads.clear()

	async def aclose(self) -> None:
		await self.downloads.aclose()
