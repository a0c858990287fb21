"""
Type identifiers the loader graph is built out of.

Raw sources are described by their file extension or MIME type,
everything living in memory between pipeline stages by an
intermediate token. All of them are ``TypeKey``s so they can be
compared, hashed and sorted without caring where they came from.
"""

import enum
import posixpath
import typing as t
from urllib.parse import unquote, urlsplit


class TypeKind(enum.IntEnum):
	WILDCARD = 0
	EXTENSION = 1
	MIME_TYPE = 2
	INTERMEDIATE = 3


class TypeKey:
	__slots__ = ("kind", "value")

	def __init__(self, kind: TypeKind, value: str) -> None:
		object.__setattr__(self, "kind", kind)
		object.__setattr__(self, "value", value)

	def __setattr__(self, name: str, value: t.Any) -> None:
		raise AttributeError("TypeKeys are immutable")

	@property
	def name(self) -> str:
		"""
		The string this key is represented by in cache keys and
		messages.
		"""
		return self.value

	@property
	def is_wildcard(self) -> bool:
		return self.kind is TypeKind.WILDCARD

	@property
	def is_raw(self) -> bool:
		"""
		Whether this key describes a raw source (a file extension or a
		MIME type) as opposed to an in-memory intermediate.
		"""
		return self.kind is TypeKind.EXTENSION or self.kind is TypeKind.MIME_TYPE

	def matches(self, other: "TypeKey") -> bool:
		"""
		Whether this key, used as a pattern, accepts ``other``.
		A wildcard accepts everything and a MIME family pattern such as
		``image/*`` accepts every MIME type of that family.
		"""
		if self.kind is TypeKind.WILDCARD or self == other:
			return True

		if self.kind is TypeKind.MIME_TYPE and other.kind is TypeKind.MIME_TYPE:
			family, _, sub = self.value.partition("/")
			return sub == "*" and other.value.partition("/")[0] == family

		return False

	def _cmp_tuple(self) -> t.Tuple[int, str]:
		return (int(self.kind), self.value)

	def __eq__(self, o: object) -> bool:
		if isinstance(o, TypeKey):
			return self.kind is o.kind and self.value == o.value
		return NotImplemented

	def __lt__(self, o: object) -> bool:
		if isinstance(o, TypeKey):
			return self._cmp_tuple() < o._cmp_tuple()
		return NotImplemented

	def __le__(self, o: object) -> bool:
		if isinstance(o, TypeKey):
			return self._cmp_tuple() <= o._cmp_tuple()
		return NotImplemented

	def __hash__(self) -> int:
		return hash(self._cmp_tuple())

	def __str__(self) -> str:
		return self.name

	def __repr__(self) -> str:
		return f"<{self.__class__.__name__} {self.kind.name} {self.value!r}>"


def Extension(ext: str) -> TypeKey:
	ext = ext.strip().lower()
	if ext and not ext.startswith("."):
		ext = "." + ext
	return TypeKey(TypeKind.EXTENSION, ext)

def MimeType(mime: str) -> TypeKey:
	# Drop parameters such as `; charset=utf-8`
	return TypeKey(TypeKind.MIME_TYPE, mime.split(";", 1)[0].strip().lower())

def Intermediate(name: str) -> TypeKey:
	if not name:
		raise ValueError("Intermediate types need a name")
	return TypeKey(TypeKind.INTERMEDIATE, name)


WILDCARD = TypeKey(TypeKind.WILDCARD, "*")

UNKNOWN = Extension("")
"""
Type of a raw source whose kind could not be told from its reference.
Only wildcard handlers apply to it.
"""


TypeLike = t.Union[TypeKey, str, type]


def type_key(obj: TypeLike) -> TypeKey:
	"""
	Turns anything usable as a type identifier into a ``TypeKey``:
	- ``TypeKey``s are returned as-is.
	- ``"*"`` is the wildcard.
	- Strings starting with a dot are file extensions.
	- Strings containing a slash are MIME types.
	- Any other string names an intermediate type.
	- Classes are intermediate types named by their module and
	  qualified name.
	"""
	if isinstance(obj, TypeKey):
		return obj

	if isinstance(obj, str):
		if obj == "*":
			return WILDCARD
		if obj.startswith("."):
			return Extension(obj)
		if "/" in obj:
			return MimeType(obj)
		return Intermediate(obj)

	if isinstance(obj, type):
		return Intermediate(f"{obj.__module__}.{obj.__qualname__}")

	raise TypeError(f"Can not use {obj!r} as a type identifier")


def type_keys(obj: t.Union[TypeLike, t.Iterable[TypeLike]]) -> t.Tuple[TypeKey, ...]:
	"""
	Like ``type_key``, but also accepts collections of equivalent type
	identifiers, returning a tuple of keys without duplicates.
	"""
	if isinstance(obj, (TypeKey, str, type)):
		return (type_key(obj),)

	res = []
	for item in obj:
		k = type_key(item)
		if k not in res:
			res.append(k)
	if not res:
		raise ValueError("Received an empty collection of type identifiers")
	return tuple(res)


def data_uri_mime_type(uri: str) -> str:
	"""
	Returns the MIME type declared in the header of a ``data:`` URI,
	falling back to ``text/plain`` as RFC 2397 demands.
	"""
	header = uri[5:].split(",", 1)[0]
	mime = header.split(";", 1)[0]
	return mime or "text/plain"


def source_type_of(source: str) -> TypeKey:
	"""
	Tells the type of a raw source reference. ``data:`` URIs are typed
	by their declared MIME type, everything else by the extension of
	its path.
	"""
	if source[:5].lower() == "data:":
		return MimeType(data_uri_mime_type(source))

	path = unquote(urlsplit(source).path)
	ext = posixpath.splitext(path)[1]
	if not ext:
		return UNKNOWN
	return Extension(ext)
