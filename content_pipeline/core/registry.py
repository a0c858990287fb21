
import enum
import typing as t

from loguru import logger

from content_pipeline.core.type_keys import TypeKey, TypeLike, type_key, type_keys

if t.TYPE_CHECKING:
	from content_pipeline.core.pipeline import PipelineContext


Handler = t.Callable[[t.Any, "PipelineContext"], t.Any]
HandlerT = t.TypeVar("HandlerT", bound=Handler)


class Stage(enum.IntEnum):
	"""
	The pipeline stages, in the order they are run in.
	"""
	PRELOAD = 0
	LOAD = 1
	IMPORT = 2
	PREPROCESS = 3
	PROCESS = 4
	POSTPROCESS = 5

	@property
	def is_edge(self) -> bool:
		"""
		Whether handlers of this stage transform one type into another
		and may thus be chained. The others are hooks that run
		alongside those transformations.
		"""
		return self in _EDGE_STAGES


_EDGE_STAGES = frozenset((Stage.LOAD, Stage.IMPORT, Stage.PROCESS))


class LoaderEntry:
	__slots__ = ("stage", "source_type", "target_type", "handle", "is_default", "index")

	def __init__(
		self,
		stage: Stage,
		source_type: TypeKey,
		target_type: TypeKey,
		handle: Handler,
		is_default: bool,
		index: int,
	) -> None:
		self.stage = stage
		self.source_type = source_type
		self.target_type = target_type
		self.handle = handle

		self.is_default = is_default
		"""
		Default entries are only considered after all explicitly
		registered ones.
		"""

		self.index = index
		"""
		Position of this entry in the order of registration.
		"""

	def __repr__(self) -> str:
		return (
			f"<{self.__class__.__name__} {self.stage.name.lower()} "
			f"{self.source_type.name!r} -> {self.target_type.name!r}"
			f"{' (default)' if self.is_default else ''}>"
		)


class LoaderRegistry:
	"""
	Append-only collection of loader entries, the edges of the type
	graph content is resolved along.
	One registry is usually created per application and shared by all
	``ContentManager``s.
	"""

	def __init__(self) -> None:
		self._entries: t.List[LoaderEntry] = []

	def register(
		self,
		stage: Stage,
		source_type: t.Union[TypeLike, t.Iterable[TypeLike]],
		target_type: t.Union[TypeLike, t.Iterable[TypeLike]],
		handle: Handler,
		default: bool = False,
	) -> t.List[LoaderEntry]:
		"""
		Registers ``handle`` for the given stage. ``source_type`` and
		``target_type`` may both be single type identifiers or
		collections of equivalent ones, in which case one entry is
		created for each combination.
		Returns the created entries.
		"""
		if not isinstance(stage, Stage):
			raise TypeError(f"Expected a Stage, got {stage!r}")
		if not callable(handle):
			raise TypeError(f"Loader handlers must be callable, got {handle!r}")

		created = []
		for st in type_keys(source_type):
			for tt in type_keys(target_type):
				if tt.is_wildcard:
					raise ValueError("Loaders can not produce the wildcard type")
				entry = LoaderEntry(stage, st, tt, handle, default, len(self._entries))
				self._entries.append(entry)
				created.append(entry)
				logger.trace(f"Registered {entry!r}")

		return created

	def get_handlers(
		self, stage: Stage, source_type: TypeLike, target_type: TypeLike
	) -> t.List[LoaderEntry]:
		"""
		Returns all entries of the given stage producing
		``target_type`` whose source type matches ``source_type``, in
		order of registration.
		"""
		source = type_key(source_type)
		target = type_key(target_type)
		return [
			e for e in self._entries
			if e.stage == stage and e.target_type == target and e.source_type.matches(source)
		]

	def edges_from(self, node: TypeKey, min_stage: Stage = Stage.LOAD) -> t.List[LoaderEntry]:
		"""
		Returns all entries that may continue a chain currently sitting
		at type ``node`` after a step of stage ``min_stage``.
		Explicitly registered entries come first, defaults last, each
		group in order of registration.
		Wildcard entries only apply to raw sources, never to
		intermediates.
		"""
		res = []
		for e in self._entries:
			if not e.stage.is_edge or e.stage < min_stage:
				continue
			if e.source_type.is_wildcard and not node.is_raw:
				continue
			if e.source_type.matches(node):
				res.append(e)

		res.sort(key=lambda e: e.is_default)
		return res

	def _decorator(
		self,
		stage: Stage,
		source_type: t.Union[TypeLike, t.Iterable[TypeLike]],
		target_type: t.Union[TypeLike, t.Iterable[TypeLike]],
		default: bool,
	) -> t.Callable[[HandlerT], HandlerT]:
		def deco(f: HandlerT) -> HandlerT:
			self.register(stage, source_type, target_type, f, default)
			return f
		return deco

	def loader(self, source_type, target_type, *, default: bool = False):
		"""
		Decorator registering a function as a ``LOAD`` stage handler.
		"""
		return self._decorator(Stage.LOAD, source_type, target_type, default)

	def importer(self, source_type, target_type, *, default: bool = False):
		"""
		Decorator registering a function as an ``IMPORT`` stage handler.
		"""
		return self._decorator(Stage.IMPORT, source_type, target_type, default)

	def processor(self, source_type, target_type, *, default: bool = False):
		"""
		Decorator registering a function as a ``PROCESS`` stage handler.
		"""
		return self._decorator(Stage.PROCESS, source_type, target_type, default)

	def hook(self, stage: Stage, target_type, source_type="*"):
		"""
		Decorator registering a function as a hook of a non-chaining
		stage (``PRELOAD``, ``PREPROCESS`` or ``POSTPROCESS``).
		"""
		if stage.is_edge:
			raise ValueError(f"{stage.name} handlers are not hooks")
		return self._decorator(stage, source_type, target_type, False)

	def __iter__(self) -> t.Iterator[LoaderEntry]:
		return iter(self._entries)

	def __len__(self) -> int:
		return len(self._entries)
