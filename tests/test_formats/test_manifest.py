"""Tests for manifest format parser and builder."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from launchpad_tools.formats.manifest import (
    Manifest,
    ManifestEntry,
    ManifestParseError,
    ManifestParser,
    parse_entry,
    serialize_entry,
    try_parse_entry,
)


class TestManifestEntry:
    """Test ManifestEntry model."""

    def test_path_uses_host_separator(self):
        """Forward slashes are rewritten to the host separator."""
        entry = ManifestEntry(relative_path="dat/sub/a.bin", content_hash="abc123", size=1)
        assert entry.relative_path == os.path.join("dat", "sub", "a.bin")
        assert entry.wire_path == "dat/sub/a.bin"

    def test_leading_separator_dropped(self):
        """Paths are always relative."""
        entry = ManifestEntry(relative_path="/dat/a.bin", content_hash="abc123", size=1)
        assert entry.wire_path == "dat/a.bin"

    def test_equality_is_structural(self):
        """Entries compare on path, hash and size."""
        a = ManifestEntry(relative_path="a.bin", content_hash="abc", size=1)
        assert a == ManifestEntry(relative_path="a.bin", content_hash="abc", size=1)
        assert a != ManifestEntry(relative_path="a.bin", content_hash="abd", size=1)
        assert a != ManifestEntry(relative_path="a.bin", content_hash="abc", size=2)
        assert a != ManifestEntry(relative_path="b.bin", content_hash="abc", size=1)
        assert len({a, ManifestEntry(relative_path="a.bin", content_hash="abc", size=1)}) == 1

    def test_hash_compared_as_opaque_string(self):
        """Hash case is significant for entry equality."""
        a = ManifestEntry(relative_path="a.bin", content_hash="ABC", size=1)
        b = ManifestEntry(relative_path="a.bin", content_hash="abc", size=1)
        assert a != b

    def test_entry_is_frozen(self):
        """Entries are immutable."""
        entry = ManifestEntry(relative_path="a.bin", content_hash="abc", size=1)
        with pytest.raises(ValidationError):
            entry.size = 2  # type: ignore[misc]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"relative_path": "", "content_hash": "abc", "size": 1},
            {"relative_path": "a:b", "content_hash": "abc", "size": 1},
            {"relative_path": "a.bin", "content_hash": "", "size": 1},
            {"relative_path": "a.bin", "content_hash": "ab:c", "size": 1},
            {"relative_path": "a.bin", "content_hash": "abc", "size": -1},
            {"relative_path": "a\r.bin", "content_hash": "abc", "size": 1},
            {"relative_path": "a\n.bin", "content_hash": "abc", "size": 1},
            {"relative_path": "a.bin\0", "content_hash": "abc", "size": 1},
            {"relative_path": "a.bin", "content_hash": "ab\rc", "size": 1},
            {"relative_path": "a.bin", "content_hash": "ab\nc", "size": 1},
            {"relative_path": "a.bin", "content_hash": "ab\0c", "size": 1},
        ],
    )
    def test_invalid_fields_rejected(self, kwargs):
        """Invalid field values raise a validation error."""
        with pytest.raises(ValidationError):
            ManifestEntry(**kwargs)


class TestEntryCodec:
    """Test parse_entry and serialize_entry."""

    def test_parse_valid_line(self):
        """A well-formed line yields all three fields."""
        entry = parse_entry("dat/a.bin:abc123:100")
        assert entry.wire_path == "dat/a.bin"
        assert entry.content_hash == "abc123"
        assert entry.size == 100

    def test_parse_strips_line_noise(self):
        """Line separators and NUL characters are removed before splitting."""
        entry = parse_entry("dat/a.bin:abc123:100\r\n\x00")
        assert entry.size == 100

    def test_parse_windows_separators(self):
        """Backslash paths from Windows-built manifests are accepted."""
        entry = parse_entry("dat\\a.bin:abc123:100")
        assert entry.wire_path == "dat/a.bin"

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "dat/a.bin:abc123",
            "dat/a.bin:abc123:100:extra",
            "dat/a.bin:abc123:ten",
            "dat/a.bin:abc123:-5",
            "dat/a.bin:abc123:",
            ":abc123:100",
        ],
    )
    def test_parse_rejects(self, line):
        """Malformed lines fail without producing an entry."""
        with pytest.raises(ManifestParseError):
            parse_entry(line)
        assert try_parse_entry(line) is None

    def test_serialize_format(self):
        """Serialized form is path:hash:size with forward slashes."""
        entry = ManifestEntry(relative_path="dat/sub/a.bin", content_hash="abc123", size=100)
        assert serialize_entry(entry) == "dat/sub/a.bin:abc123:100"
        assert str(entry) == "dat/sub/a.bin:abc123:100"

    @pytest.mark.parametrize(
        "path,content_hash,size",
        [
            ("a.bin", "d41d8cd98f00b204e9800998ecf8427e", 0),
            ("dir/with spaces/file.txt", "ABCDEF", 123456789),
            ("deep/nested/path/to/file.pak", "abc123", 1),
        ],
    )
    def test_roundtrip(self, path, content_hash, size):
        """parse(serialize(e)) == e."""
        entry = ManifestEntry(relative_path=path, content_hash=content_hash, size=size)
        assert parse_entry(serialize_entry(entry)) == entry


class TestManifest:
    """Test Manifest model helpers."""

    def _manifest(self) -> Manifest:
        return Manifest(entries=[
            ManifestEntry(relative_path="a.bin", content_hash="aaa", size=1),
            ManifestEntry(relative_path="dir/b.bin", content_hash="bbb", size=2),
        ])

    def test_length_and_iteration(self):
        """Manifest iterates its entries in order."""
        manifest = self._manifest()
        assert len(manifest) == 2
        assert [e.wire_path for e in manifest] == ["a.bin", "dir/b.bin"]
        assert manifest.total_size == 3

    def test_empty_manifest_is_falsy(self):
        """An empty manifest is falsy."""
        assert not Manifest()

    def test_lookup_helpers(self):
        """contains, find_by_path and index_of locate entries."""
        manifest = self._manifest()
        b = ManifestEntry(relative_path="dir/b.bin", content_hash="bbb", size=2)

        assert manifest.contains(b)
        assert not manifest.contains(ManifestEntry(relative_path="dir/b.bin", content_hash="ccc", size=2))
        assert manifest.find_by_path("dir/b.bin") == b
        assert manifest.find_by_path("missing.bin") is None
        assert manifest.index_of(b) == 1
        assert manifest.index_of(ManifestEntry(relative_path="x", content_hash="x", size=0)) is None


class TestManifestParser:
    """Test ManifestParser."""

    def test_parse_skips_invalid_lines(self):
        """Unparsable lines are skipped, valid ones kept in order."""
        data = b"a.bin:aaa:1\nnot a manifest line\n\nb.bin:bbb:2\nc.bin:ccc:x\n"
        manifest = ManifestParser().parse(data)
        assert [e.wire_path for e in manifest] == ["a.bin", "b.bin"]

    def test_parse_handles_bom_and_crlf(self):
        """UTF-8 BOM and CRLF line endings are tolerated."""
        data = "\ufeffa.bin:aaa:1\r\nb.bin:bbb:2\r\n".encode()
        manifest = ManifestParser().parse(data)
        assert len(manifest) == 2
        assert manifest.entries[0].wire_path == "a.bin"

    def test_build(self):
        """Build writes one line per entry."""
        manifest = Manifest(entries=[
            ManifestEntry(relative_path="a.bin", content_hash="aaa", size=1),
            ManifestEntry(relative_path="dir/b.bin", content_hash="bbb", size=2),
        ])
        assert ManifestParser().build(manifest) == b"a.bin:aaa:1\ndir/b.bin:bbb:2\n"

    def test_file_roundtrip(self, tmp_path: Path):
        """A built manifest file parses back to the same manifest."""
        manifest = Manifest(entries=[
            ManifestEntry(relative_path="dir/b.bin", content_hash="bbb", size=2),
        ])
        path = tmp_path / "GameManifest.txt"
        parser = ManifestParser()
        parser.build_file(manifest, path)
        assert parser.parse_file(path) == manifest

    def test_parse_missing_file(self, tmp_path: Path):
        """A missing file raises ValueError."""
        with pytest.raises(ValueError, match="Cannot read file"):
            ManifestParser().parse_file(tmp_path / "missing.txt")
