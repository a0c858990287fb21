"""
Fetches raw content and keeps it around by its absolute URL.

Sources may live on the web (``http``/``https``), on disk (``file``)
or be embedded in the reference itself (``data``). Relative references
are resolved against the cache's base URL, which defaults to the
working directory at the time the cache was created.
"""

import asyncio
import base64
import binascii
from pathlib import Path
import typing as t
from urllib.parse import unquote, unquote_to_bytes, urljoin, urlsplit, urlunsplit
from urllib.request import url2pathname
import mimetypes

import httpx
from loguru import logger

from content_pipeline.core.type_keys import MimeType


DEFAULT_REFERENCE_FAMILIES = ("image", "video")

_TEXTUAL_MIME_TYPES = frozenset((
	"application/json",
	"application/xml",
	"application/javascript",
	"application/ecmascript",
	"application/x-yaml",
	"application/yaml",
))


def is_textual_mime_type(mime: str) -> bool:
	"""
	Whether content of the given MIME type is best kept around as
	decoded text.
	"""
	mime = MimeType(mime).name
	if mime.startswith("text/") or mime in _TEXTUAL_MIME_TYPES:
		return True
	return mime.endswith("+json") or mime.endswith("+xml")


def _get_charset(content_type: str, default: str = "utf-8") -> str:
	for param in content_type.split(";")[1:]:
		k, _, v = param.partition("=")
		if k.strip().lower() == "charset" and v.strip():
			return v.strip().strip('"')
	return default


class DownloadError(OSError):
	"""
	Raised when raw content could not be fetched or decoded.
	"""

	def __init__(self, url: str, reason: str) -> None:
		super().__init__(f"Failed downloading {url!r}: {reason}")
		self.url = url
		self.reason = reason


class RawAsset:
	"""
	Raw content as returned by a download.
	"""

	__slots__ = ("url", "mime_type", "content", "is_reference")

	def __init__(
		self,
		url: str,
		mime_type: str,
		content: t.Union[str, bytes],
		is_reference: bool = False,
	) -> None:
		self.url = url
		"""The normalized, absolute URL the content was retrieved from."""

		self.mime_type = mime_type
		"""The content's MIME type, without any parameters."""

		self.content = content
		"""
		The decoded text for textual content, the raw bytes for other
		binary content, or just the URL again for media content that is
		better left to be fetched by whatever consumes it.
		"""

		self.is_reference = is_reference
		"""Whether ``content`` is merely the URL."""

	def as_dict(self) -> t.Dict[str, t.Any]:
		return {"url": self.url, "type": self.mime_type, "content": self.content}

	def __repr__(self) -> str:
		return f"<{self.__class__.__name__} {self.url!r} ({self.mime_type})>"


class DownloadRequest:
	__slots__ = ("url", "headers")

	def __init__(self, url: str, headers: t.Optional[t.Dict[str, str]] = None) -> None:
		self.url = url
		self.headers = {} if headers is None else headers

	@classmethod
	def coerce(
		cls,
		request: t.Union[str, t.Mapping[str, t.Any], "DownloadRequest"],
		default_headers: t.Optional[t.Mapping[str, str]] = None,
	) -> "DownloadRequest":
		"""
		Creates a new request from either a URL, a mapping with at
		least an ``url`` and possibly ``headers`` key, or another
		request, with ``default_headers`` merged underneath the given
		headers.
		"""
		if isinstance(request, str):
			url, headers = request, None
		elif isinstance(request, DownloadRequest):
			url, headers = request.url, request.headers
		else:
			if "url" not in request:
				raise ValueError("Download requests need an url")
			url, headers = request["url"], request.get("headers")

		merged = dict(default_headers) if default_headers else {}
		if headers:
			merged.update(headers)
		return cls(url, merged)


class DownloadCache:
	"""
	Downloads raw content and caches it by normalized URL.
	Concurrent downloads of the same URL share a single fetch.
	"""

	def __init__(
		self,
		base_url: t.Optional[str] = None,
		reference_families: t.Iterable[str] = DEFAULT_REFERENCE_FAMILIES,
		client: t.Optional[httpx.AsyncClient] = None,
		timeout: t.Optional[float] = 30.0,
		default_headers: t.Optional[t.Mapping[str, str]] = None,
		transform_request: t.Optional[t.Callable[[DownloadRequest], t.Optional[DownloadRequest]]] = None,
		enabled: bool = True,
	) -> None:
		self.base_url = base_url if base_url is not None else Path.cwd().as_uri() + "/"
		"""
		The URL relative references are resolved against.
		Should end with a slash if it is meant as a directory.
		"""

		self.reference_families = frozenset(f.lower() for f in reference_families)
		"""
		MIME type families (the part in front of the slash) whose
		content is not kept, only its URL.
		"""

		self.default_headers = dict(default_headers) if default_headers else {}
		"""Headers sent along with every HTTP request."""

		self.transform_request = transform_request
		"""
		Called with each request before it is made. May modify it in
		place or return a replacement.
		"""

		self.enabled = enabled
		"""Whether downloaded content is stored at all."""

		self._timeout = timeout
		self._client = client
		self._owns_client = client is None

		self._entries: t.Dict[str, RawAsset] = {}
		self._pending: t.Dict[str, "asyncio.Future[RawAsset]"] = {}

	def normalize(self, url: str) -> str:
		"""
		Resolves ``url`` against the base URL and canonicalizes it for
		use as a cache key.
		"""
		url = url.strip()
		if url[:5].lower() == "data:":
			return url

		parts = urlsplit(urljoin(self.base_url, url))
		return urlunsplit((
			parts.scheme.lower(),
			parts.netloc.lower(),
			parts.path or "/",
			parts.query,
			"",
		))

	def lookup(self, url: str) -> t.Optional[RawAsset]:
		"""
		Returns the cached content for ``url``, or ``None``.
		"""
		return self._entries.get(self.normalize(url))

	def __contains__(self, url: object) -> bool:
		return isinstance(url, str) and self.lookup(url) is not None

	def __len__(self) -> int:
		return len(self._entries)

	async def download(
		self,
		request: t.Union[str, t.Mapping[str, t.Any], DownloadRequest],
		reload: bool = False,
	) -> RawAsset:
		"""
		Returns the content for the given request, fetching it if it
		is not cached yet or ``reload`` is given, in which case the
		existing entry is overwritten.
		Raises a ``DownloadError`` if it could not be fetched; failed
		downloads are never cached.
		"""
		request = DownloadRequest.coerce(request, self.default_headers)
		if self.transform_request is not None:
			request = self.transform_request(request) or request

		url = self.normalize(request.url)

		if not reload and (found := self._entries.get(url)) is not None:
			logger.trace(f"Download cache hit for {url!r}")
			return found

		if (pending := self._pending.get(url)) is None:
			pending = asyncio.ensure_future(self._download(url, request))
			self._pending[url] = pending

		return await asyncio.shield(pending)

	async def download_all(
		self,
		requests: t.Iterable[t.Union[str, t.Mapping[str, t.Any], DownloadRequest]],
	) -> t.List[RawAsset]:
		"""
		Downloads all given requests concurrently and returns their
		content in the same order.
		"""
		return list(await asyncio.gather(*(self.download(r) for r in requests)))

	async def _download(self, url: str, request: DownloadRequest) -> RawAsset:
		try:
			logger.debug(f"Downloading {url if len(url) < 96 else url[:93] + '...'!r}")
			asset = await self._fetch(url, request)
			if self.enabled:
				self._entries[url] = asset
			return asset
		finally:
			self._pending.pop(url, None)

	async def _fetch(self, url: str, request: DownloadRequest) -> RawAsset:
		scheme = urlsplit(url).scheme
		if scheme == "data":
			content_type, data = self._decode_data_uri(url)
			return self._make_asset(url, content_type, data)
		elif scheme == "file":
			return await self._fetch_file(url)
		elif scheme in ("http", "https"):
			return await self._fetch_http(url, request)

		raise DownloadError(url, f"unsupported scheme {scheme!r}")

	async def _fetch_http(self, url: str, request: DownloadRequest) -> RawAsset:
		if self._client is None:
			self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)

		try:
			response = await self._client.get(url, headers=request.headers)
			response.raise_for_status()
		except httpx.HTTPError as e:
			raise DownloadError(url, str(e) or e.__class__.__name__) from e

		content_type = response.headers.get("content-type", "application/octet-stream")
		if is_textual_mime_type(content_type):
			# httpx already knows how to deal with charsets
			return self._make_asset(url, content_type, response.content, response.text)
		return self._make_asset(url, content_type, response.content)

	async def _fetch_file(self, url: str) -> RawAsset:
		path = Path(url2pathname(unquote(urlsplit(url).path)))
		content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

		family = MimeType(content_type).name.partition("/")[0]
		if family in self.reference_families:
			# Still make sure there is something to refer to
			if not path.is_file():
				raise DownloadError(url, "no such file")
			return self._make_asset(url, content_type, b"")

		loop = asyncio.get_running_loop()
		try:
			data = await loop.run_in_executor(None, path.read_bytes)
		except OSError as e:
			raise DownloadError(url, e.strerror or str(e)) from e

		return self._make_asset(url, content_type, data)

	@staticmethod
	def _decode_data_uri(uri: str) -> t.Tuple[str, bytes]:
		header, sep, payload = uri[5:].partition(",")
		if not sep:
			raise DownloadError(uri[:32], "malformed data URI")

		params = header.split(";")
		is_base64 = params[-1].strip().lower() == "base64"
		if is_base64:
			params.pop()
		if not params[0]:
			params[0] = "text/plain"

		try:
			data = base64.b64decode(payload, validate=True) if is_base64 else unquote_to_bytes(payload)
		except (binascii.Error, ValueError) as e:
			raise DownloadError(uri[:32], f"bad data URI payload: {e}") from e

		return ";".join(params), data

	def _make_asset(
		self,
		url: str,
		content_type: str,
		data: bytes,
		text: t.Optional[str] = None,
	) -> RawAsset:
		mime = MimeType(content_type).name

		if mime.partition("/")[0] in self.reference_families:
			return RawAsset(url, mime, url, True)

		if not is_textual_mime_type(mime):
			return RawAsset(url, mime, data)

		if text is None:
			try:
				text = data.decode(_get_charset(content_type))
			except (UnicodeDecodeError, LookupError) as e:
				raise DownloadError(url if len(url) < 64 else url[:64], str(e)) from e

		return RawAsset(url, mime, text)

	def clear(self) -> None:
		"""
		Drops all cached content.
		"""
		self._entries.clear()

	async def aclose(self) -> None:
		"""
		Closes the HTTP client if it was created by this cache.
		"""
		if self._client is not None and self._owns_client:
			await self._client.aclose()
			self._client = None
