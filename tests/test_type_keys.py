
import pytest

from content_pipeline import (
	Extension, Intermediate, MimeType, TypeKind, UNKNOWN, WILDCARD, source_type_of, type_key,
)
from content_pipeline.core.type_keys import type_keys


class PixelsData:
	pass


def test_type_key_parses_strings():
	assert type_key("*") is WILDCARD
	assert type_key(".PNG") == Extension("png")
	assert type_key("Image/PNG; charset=binary") == MimeType("image/png")
	assert type_key("PixelsSymbol") == Intermediate("PixelsSymbol")
	assert type_key(".png").kind is TypeKind.EXTENSION
	assert type_key("text/plain").kind is TypeKind.MIME_TYPE


def test_type_key_from_class():
	key = type_key(PixelsData)
	assert key.kind is TypeKind.INTERMEDIATE
	assert key.name == f"{__name__}.PixelsData"
	assert type_key(PixelsData) == key


def test_type_key_rejects_garbage():
	with pytest.raises(TypeError):
		type_key(3)
	with pytest.raises(ValueError):
		Intermediate("")


def test_keys_are_immutable_and_hashable():
	key = Extension(".json")
	with pytest.raises(AttributeError):
		key.value = ".yml"
	assert len({Extension(".json"), type_key(".json"), MimeType("application/json")}) == 2


def test_total_ordering():
	keys = [Intermediate("B"), MimeType("text/plain"), Extension(".a"), WILDCARD, Intermediate("A")]
	assert sorted(keys) == [
		WILDCARD, Extension(".a"), MimeType("text/plain"), Intermediate("A"), Intermediate("B"),
	]
	assert Extension(".a") <= Extension(".a")


def test_same_name_different_kind_differs():
	assert Intermediate("text/plain") != MimeType("text/plain")


def test_matches():
	assert WILDCARD.matches(Intermediate("Anything"))
	assert MimeType("image/*").matches(MimeType("image/png"))
	assert not MimeType("image/*").matches(MimeType("video/mp4"))
	assert not MimeType("image/png").matches(MimeType("image/*"))
	assert not Extension(".png").matches(MimeType("image/png"))


def test_is_raw():
	assert Extension(".png").is_raw
	assert MimeType("image/png").is_raw
	assert UNKNOWN.is_raw
	assert not Intermediate("Pixels").is_raw
	assert not WILDCARD.is_raw


def test_type_keys_deduplicates():
	assert type_keys((".json", ".JSON", "application/json")) == (
		Extension(".json"), MimeType("application/json")
	)
	assert type_keys(".json") == (Extension(".json"),)
	with pytest.raises(ValueError):
		type_keys([])


@pytest.mark.parametrize("source, expected", [
	("a.pixels", Extension(".pixels")),
	("models/Duck.GLTF", Extension(".gltf")),
	("http://origin/a.png?v=3#frag", Extension(".png")),
	("http://origin/some%20file.json", Extension(".json")),
	("http://origin/settings", UNKNOWN),
	("data:application/json;base64,e30=", MimeType("application/json")),
	("data:,hello", MimeType("text/plain")),
])
def test_source_type_of(source, expected):
	assert source_type_of(source) == expected
