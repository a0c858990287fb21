
import asyncio

import pytest

from content_pipeline import DownloadCache, DownloadError, DownloadRequest, RawAsset
from content_pipeline.core.download_cache import is_textual_mime_type


def test_normalize():
	cache = DownloadCache(base_url="http://origin/assets/")
	assert cache.normalize("a.png") == "http://origin/assets/a.png"
	assert cache.normalize("/a.png") == "http://origin/a.png"
	assert cache.normalize("HTTP://Origin/a.png#frag") == "http://origin/a.png"
	assert cache.normalize("../b.json?v=2") == "http://origin/b.json?v=2"
	assert cache.normalize("http://other") == "http://other/"
	assert cache.normalize("data:,Hello") == "data:,Hello"


def test_default_base_is_working_directory(tmp_path, monkeypatch):
	monkeypatch.chdir(tmp_path)
	cache = DownloadCache()
	assert cache.normalize("a.txt") == (tmp_path / "a.txt").as_uri()


def test_relative_and_absolute_urls_share_an_entry(origin, make_cache):
	origin.serve("/a.png", "image/png", b"\x89PNG")
	cache = make_cache()

	async def run():
		first = await cache.download({"url": "a.png"})
		second = await cache.download({"url": "http://origin/a.png"})
		return first, second

	first, second = asyncio.run(run())
	assert first is second
	assert origin.hits["/a.png"] == 1
	assert len(cache) == 1
	assert "a.png" in cache


def test_media_is_kept_by_reference(origin, make_cache):
	origin.serve("/clip.mp4", "video/mp4", b"\x00\x00")
	origin.serve("/a.png", "image/png", b"\x89PNG")
	cache = make_cache()

	clip, image = asyncio.run(cache.download_all(["clip.mp4", "a.png"]))
	assert clip.content == "http://origin/clip.mp4"
	assert clip.is_reference
	assert image.as_dict() == {
		"url": "http://origin/a.png", "type": "image/png", "content": "http://origin/a.png",
	}


def test_text_is_kept_inline(origin, make_cache):
	origin.serve("/readme.txt", "text/plain; charset=utf-8", "héllo")
	origin.serve("/scene.json", "application/json", '{"a": 1}')
	origin.serve("/mesh.bin", "application/octet-stream", b"\x01\x02")
	cache = make_cache()

	text, doc, blob = asyncio.run(cache.download_all(["readme.txt", "scene.json", "mesh.bin"]))
	assert (text.mime_type, text.content) == ("text/plain", "héllo")
	assert (doc.mime_type, doc.content) == ("application/json", '{"a": 1}')
	assert (blob.mime_type, blob.content, blob.is_reference) == ("application/octet-stream", b"\x01\x02", False)


def test_concurrent_downloads_are_coalesced(origin, make_cache):
	origin.serve("/a.json", "application/json", "[]")
	cache = make_cache()

	async def run():
		return await asyncio.gather(cache.download("a.json"), cache.download("/a.json"))

	a, b = asyncio.run(run())
	assert a is b
	assert origin.hits["/a.json"] == 1


def test_reload_refetches(origin, make_cache):
	origin.serve("/a.txt", "text/plain", "one")
	cache = make_cache()

	async def run():
		first = await cache.download("a.txt")
		origin.serve("/a.txt", "text/plain", "two")
		cached = await cache.download("a.txt")
		reloaded = await cache.download("a.txt", reload=True)
		return first, cached, reloaded

	first, cached, reloaded = asyncio.run(run())
	assert first is cached
	assert reloaded.content == "two"
	assert cache.lookup("a.txt") is reloaded
	assert origin.hits["/a.txt"] == 2


def test_failed_downloads_are_not_cached(origin, make_cache):
	cache = make_cache()

	async def run():
		with pytest.raises(DownloadError) as exc_info:
			await cache.download("missing.json")
		assert exc_info.value.url == "http://origin/missing.json"
		assert len(cache) == 0

		origin.serve("/missing.json", "application/json", "{}")
		return await cache.download("missing.json")

	assert asyncio.run(run()).content == "{}"
	assert origin.hits["/missing.json"] == 2


def test_disabled_cache_stores_nothing(origin, make_cache):
	origin.serve("/a.txt", "text/plain", "a")
	cache = make_cache(enabled=False)

	async def run():
		await cache.download("a.txt")
		await cache.download("a.txt")

	asyncio.run(run())
	assert len(cache) == 0
	assert origin.hits["/a.txt"] == 2


def test_request_headers(origin, make_cache):
	origin.serve("/a.txt", "text/plain", "a")

	def transform(request: DownloadRequest):
		request.headers["X-Trace"] = "1"

	cache = make_cache(default_headers={"Accept": "text/plain"}, transform_request=transform)
	asyncio.run(cache.download({"url": "a.txt", "headers": {"Authorization": "Bearer t"}}))

	headers = origin.requests[0].headers
	assert headers["accept"] == "text/plain"
	assert headers["authorization"] == "Bearer t"
	assert headers["x-trace"] == "1"


def test_request_needs_url():
	with pytest.raises(ValueError):
		DownloadRequest.coerce({"headers": {}})


def test_data_uris():
	cache = DownloadCache(base_url="http://origin/")

	async def run():
		return await cache.download_all([
			"data:text/plain;base64,aGVsbG8=",
			"data:,a%20b",
			"data:application/octet-stream;base64,AAE=",
		])

	b64, plain, blob = asyncio.run(run())
	assert (b64.mime_type, b64.content) == ("text/plain", "hello")
	assert (plain.mime_type, plain.content) == ("text/plain", "a b")
	assert blob.content == b"\x00\x01"


def test_malformed_data_uri():
	cache = DownloadCache(base_url="http://origin/")
	with pytest.raises(DownloadError):
		asyncio.run(cache.download("data:text/plain;base64"))
	with pytest.raises(DownloadError):
		asyncio.run(cache.download("data:text/plain;base64,!!!"))


def test_files(tmp_path):
	(tmp_path / "notes.txt").write_text("on disk", encoding="utf-8")
	(tmp_path / "pic.png").write_bytes(b"\x89PNG")
	cache = DownloadCache(base_url=tmp_path.as_uri() + "/")

	notes, pic = asyncio.run(cache.download_all(["notes.txt", "pic.png"]))
	assert (notes.mime_type, notes.content) == ("text/plain", "on disk")
	assert pic.is_reference
	assert pic.content == (tmp_path / "pic.png").as_uri()

	with pytest.raises(DownloadError):
		asyncio.run(cache.download("gone.png"))
	with pytest.raises(DownloadError):
		asyncio.run(cache.download("gone.txt"))


def test_unsupported_scheme():
	cache = DownloadCache(base_url="http://origin/")
	with pytest.raises(DownloadError, match="unsupported scheme"):
		asyncio.run(cache.download("ftp://origin/a.txt"))


def test_clear(origin, make_cache):
	origin.serve("/a.txt", "text/plain", "a")
	cache = make_cache()
	asyncio.run(cache.download("a.txt"))
	cache.clear()
	assert cache.lookup("a.txt") is None


@pytest.mark.parametrize("mime, textual", [
	("text/css", True),
	("application/json; charset=utf-8", True),
	("application/gltf+json", True),
	("image/svg+xml", True),
	("application/x-yaml", True),
	("application/octet-stream", False),
	("model/gltf-binary", False),
])
def test_is_textual_mime_type(mime, textual):
	assert is_textual_mime_type(mime) is textual
