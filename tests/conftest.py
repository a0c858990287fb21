
import collections
import typing as t

import httpx
import pytest

from content_pipeline import ContentManager, DownloadCache, LoaderRegistry, register_default_loaders


ORIGIN = "http://origin/"


class FakeOrigin:
	"""
	Serves a fixed set of documents by path, remembering every request
	it received.
	"""

	def __init__(self) -> None:
		self.files: t.Dict[str, t.Tuple[str, bytes]] = {}
		self.hits: t.Counter[str] = collections.Counter()
		self.requests: t.List[httpx.Request] = []

	def serve(self, path: str, content_type: str, body: t.Union[str, bytes]) -> None:
		self.files[path] = (content_type, body.encode("utf-8") if isinstance(body, str) else body)

	def __call__(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		self.hits[request.url.path] += 1
		if request.url.path not in self.files:
			return httpx.Response(404, request=request)

		content_type, body = self.files[request.url.path]
		return httpx.Response(200, headers={"Content-Type": content_type}, content=body)


@pytest.fixture
def origin() -> FakeOrigin:
	return FakeOrigin()


@pytest.fixture
def make_cache(origin: FakeOrigin) -> t.Callable[..., DownloadCache]:
	def make(**kwargs: t.Any) -> DownloadCache:
		client = httpx.AsyncClient(transport=httpx.MockTransport(origin))
		kwargs.setdefault("base_url", ORIGIN)
		return DownloadCache(client=client, **kwargs)
	return make


@pytest.fixture
def registry() -> LoaderRegistry:
	return LoaderRegistry()


@pytest.fixture
def manager(registry: LoaderRegistry, make_cache: t.Callable[..., DownloadCache]) -> ContentManager:
	return ContentManager(registry, make_cache())


@pytest.fixture
def default_manager(make_cache: t.Callable[..., DownloadCache]) -> ContentManager:
	registry = LoaderRegistry()
	register_default_loaders(registry)
	return ContentManager(registry, make_cache())
