
import typing as t

from loguru import logger

from content_pipeline.core.registry import LoaderEntry, LoaderRegistry, Stage
from content_pipeline.core.type_keys import TypeKey, TypeLike, type_key


DEFAULT_MAX_CHAIN_LENGTH = 8


class HandlerNotFoundError(LookupError):
	"""
	Raised when no chain of loaders leads from a source type to the
	requested target type.
	"""

	def __init__(self, stage: Stage, source_type: TypeKey, target_type: TypeKey) -> None:
		super().__init__(
			f"loader not found: stage: {stage.name.lower()!r}, "
			f"sourceType: {source_type.name!r}, targetType: {target_type.name!r}"
		)
		self.stage = stage
		self.source_type = source_type
		self.target_type = target_type


class PathResolver:
	"""
	Finds chains of loader entries through a registry's type graph.

	A chain is a sequence of edges where each edge consumes the type
	the previous one produced and never belongs to an earlier stage
	than it, so the fixed stage order always holds. Among all chains,
	the shortest one is picked. Chains of equal length are ranked by
	the priority of their edges, so an explicitly registered handler
	always beats a default one at the same position.
	"""

	def __init__(
		self, registry: LoaderRegistry, max_chain_length: int = DEFAULT_MAX_CHAIN_LENGTH
	) -> None:
		if max_chain_length < 1:
			raise ValueError("Chains need to be allowed at least one step")

		self.registry = registry
		self.max_chain_length = max_chain_length

	def resolve(
		self,
		source_type: TypeLike,
		target_type: TypeLike,
		min_stage: Stage = Stage.LOAD,
	) -> t.List[LoaderEntry]:
		"""
		Returns the list of loader entries leading from
		``source_type`` to ``target_type``, starting no earlier than
		``min_stage``.
		If the two types are the same, the chain is empty.
		Raises a ``HandlerNotFoundError`` if no chain exists.
		"""
		source = type_key(source_type)
		target = type_key(target_type)

		if source == target:
			return []

		frontier: t.List[t.Tuple[TypeKey, Stage, t.List[LoaderEntry]]] = [(source, min_stage, [])]
		seen = {(source, min_stage)}

		for _ in range(self.max_chain_length):
			next_frontier = []
			for node, stage, chain in frontier:
				for entry in self.registry.edges_from(node, stage):
					if entry.target_type == target:
						chain = chain + [entry]
						logger.trace(
							f"Resolved {source.name!r} -> {target.name!r}: "
							f"{' -> '.join(repr(e) for e in chain)}"
						)
						return chain

					state = (entry.target_type, entry.stage)
					if state in seen:
						continue
					seen.add(state)
					next_frontier.append((entry.target_type, entry.stage, chain + [entry]))

			if not next_frontier:
				break
			frontier = next_frontier

		raise HandlerNotFoundError(min_stage, source, target)

	def can_resolve(
		self,
		source_type: TypeLike,
		target_type: TypeLike,
		min_stage: Stage = Stage.LOAD,
	) -> bool:
		try:
			self.resolve(source_type, target_type, min_stage)
		except HandlerNotFoundError:
			return False
		return True
