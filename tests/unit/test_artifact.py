import pytest
import yaml

from helpers import metadata_doc
from repodevkit.artifact import decode_metadata
from repodevkit.errors import DecodeError


def _doc(**overrides):
    doc = yaml.safe_load(metadata_doc("dev-libs", "foo", "1.2-r1"))
    doc.update(overrides)
    return doc


class TestDecodeMetadata:
    def test_identity_and_payload(self) -> None:
        art = decode_metadata(metadata_doc("dev-libs", "foo", "1.2-r1", path="/packages/foo-1.2-r1.package.tar.zst"))
        assert art.fingerprint == "dev-libs/foo-1.2-r1"
        assert art.key == "dev-libs/foo"
        assert art.payload == "foo-1.2-r1.package.tar.zst"
        assert art.labels["original.package.name"] == "dev-libs/foo"
        assert art.checksums == {"sha256": "0" * 64}
        assert art.compression == "none"

    def test_accepts_bytes(self) -> None:
        art = decode_metadata(metadata_doc("a", "b", "1").encode("utf-8"), source="b-1.metadata.yaml")
        assert art.name == "b"

    def test_compilespec_requires_fall_back_to_package_block(self) -> None:
        doc = _doc()
        doc["compilespec"]["package"]["requires"] = [{"category": "sys-libs", "name": "zlib"}]
        doc["compilespec"]["image"] = "builder:latest"
        doc["compilespec"]["steps"] = ["make", "make install"]
        art = decode_metadata(yaml.safe_dump(doc))
        assert [r.key for r in art.compilespec.requires] == ["sys-libs/zlib"]
        assert art.compilespec.image == "builder:latest"
        assert art.compilespec.steps == ["make", "make install"]

    def test_slot_gives_search_category(self) -> None:
        doc = _doc()
        doc["compilespec"]["package"]["slot"] = "2/2.4"
        art = decode_metadata(yaml.safe_dump(doc))
        assert art.category == "dev-libs"
        assert art.search_category == "dev-libs-2"
        assert art.search_fingerprint == "dev-libs-2/foo-1.2-r1"

    def test_unknown_keys_stay_in_raw(self) -> None:
        art = decode_metadata(yaml.safe_dump(_doc(extra={"x": 1})))
        assert art.raw["extra"] == {"x": 1}
        assert art.payload == "foo-1.2-r1.package.tar"

    @pytest.mark.parametrize(
        "text",
        [
            "- just\n- a list\n",
            "path: a.package.tar\n",
            "path: a.package.tar\ncompilespec: {package: {name: a, version: '1'}}\n",
            "compilespec: {package: {category: c, name: a, version: '1'}}\n",
            "path: [oops\n",
        ],
    )
    def test_malformed(self, text: str) -> None:
        with pytest.raises(DecodeError):
            decode_metadata(text, source="bad.metadata.yaml")

    @pytest.mark.parametrize(
        "field",
        ["labels", "steps", "checksums"],
    )
    def test_wrong_field_types(self, field: str) -> None:
        doc = _doc()
        if field == "labels":
            doc["compilespec"]["package"]["labels"] = ["not", "a", "map"]
        elif field == "steps":
            doc["compilespec"]["steps"] = "make"
        else:
            doc["checksums"] = ["abc"]
        with pytest.raises(DecodeError):
            decode_metadata(yaml.safe_dump(doc))

    def test_invalid_utf8(self) -> None:
        with pytest.raises(DecodeError):
            decode_metadata(b"\xff\xfe\xfa")
