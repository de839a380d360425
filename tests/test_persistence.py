"""
Tests for persistence — atomic JSON files and the install manifest.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from jfp.core.models.catalog import EntryKind
from jfp.core.models.manifest import Manifest, ManifestEntry
from jfp.core.persistence.json_file import read_json, write_json_atomic, write_text_atomic
from jfp.core.persistence.manifest import (
    MANIFEST_FILE,
    check_skill_modification,
    create_empty_manifest,
    get_manifest_entry,
    is_generated_by_tool,
    read_manifest,
    remove_manifest_entry,
    stamp_manifest,
    upsert_manifest_entry,
    write_manifest,
)
from jfp.core.services.hashing import compute_hash


def _entry(entry_id: str, content_hash: str = "h1", kind: EntryKind = EntryKind.PROMPT) -> ManifestEntry:
    return ManifestEntry(
        id=entry_id,
        kind=kind,
        version="1.0.0",
        hash=content_hash,
        updated_at="2025-01-10T00:00:00+00:00",
    )


class TestJsonFile:
    """Tests for best-effort reads and atomic writes."""

    def test_write_and_read(self, tmp_path: Path):
        path = tmp_path / "deep" / "nested" / "data.json"
        write_json_atomic(path, {"a": 1, "b": ["x"]})
        assert read_json(path) == {"a": 1, "b": ["x"]}

    def test_written_file_is_indented_with_newline(self, tmp_path: Path):
        path = tmp_path / "data.json"
        write_json_atomic(path, {"a": 1})
        raw = path.read_text()
        assert raw.endswith("\n")
        assert "\n  " in raw

    def test_read_missing(self, tmp_path: Path):
        assert read_json(tmp_path / "nope.json") is None

    def test_read_corrupt(self, tmp_path: Path):
        path = tmp_path / "corrupt.json"
        path.write_text("not json at all {{{")
        assert read_json(path) is None

    def test_failed_write_keeps_previous_file(self, tmp_path: Path):
        path = tmp_path / "data.json"
        write_json_atomic(path, {"version": 1})

        with patch("jfp.core.persistence.json_file.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                write_json_atomic(path, {"version": 2})

        assert read_json(path) == {"version": 1}

    def test_failed_write_leaves_no_temp_files(self, tmp_path: Path):
        path = tmp_path / "data.txt"
        with patch("jfp.core.persistence.json_file.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                write_text_atomic(path, "content")
        assert os.listdir(tmp_path) == []


class TestManifestReadWrite:
    """Tests for manifest persistence."""

    def test_round_trip(self, tmp_path: Path):
        manifest = Manifest(
            generated_at="2025-01-10T12:00:00+00:00",
            jfp_version="0.1.0",
            entries=[_entry("alpha"), _entry("starter", "h2", EntryKind.BUNDLE)],
        )
        write_manifest(tmp_path, manifest)
        assert read_manifest(tmp_path) == manifest

    def test_write_creates_root(self, tmp_path: Path):
        root = tmp_path / "not" / "yet"
        write_manifest(root, create_empty_manifest("0.1.0"))
        assert (root / MANIFEST_FILE).is_file()

    def test_wire_format_is_camel_case(self, tmp_path: Path):
        write_manifest(tmp_path, Manifest(jfp_version="0.1.0", entries=[_entry("alpha")]))
        data = json.loads((tmp_path / MANIFEST_FILE).read_text())
        assert set(data) == {"generatedAt", "jfpVersion", "entries"}
        assert data["entries"][0]["updatedAt"] == "2025-01-10T00:00:00+00:00"
        assert data["entries"][0]["kind"] == "prompt"

    def test_missing_returns_none(self, tmp_path: Path):
        assert read_manifest(tmp_path) is None

    def test_invalid_json_returns_none(self, tmp_path: Path):
        (tmp_path / MANIFEST_FILE).write_text("{ definitely not json")
        assert read_manifest(tmp_path) is None

    def test_entry_missing_field_returns_none(self, tmp_path: Path):
        data = {
            "generatedAt": "2025-01-10T00:00:00+00:00",
            "jfpVersion": "0.1.0",
            "entries": [{"id": "alpha", "kind": "prompt", "version": "1.0.0"}],
        }
        (tmp_path / MANIFEST_FILE).write_text(json.dumps(data))
        assert read_manifest(tmp_path) is None

    def test_wrong_shape_returns_none(self, tmp_path: Path):
        (tmp_path / MANIFEST_FILE).write_text(json.dumps(["not", "an", "object"]))
        assert read_manifest(tmp_path) is None

    def test_unknown_kind_returns_none(self, tmp_path: Path):
        entry = _entry("alpha").to_wire()
        entry["kind"] = "workflow"
        (tmp_path / MANIFEST_FILE).write_text(json.dumps({"entries": [entry]}))
        assert read_manifest(tmp_path) is None

    def test_duplicate_ids_return_none(self, tmp_path: Path):
        entry = _entry("alpha").to_wire()
        (tmp_path / MANIFEST_FILE).write_text(json.dumps({"entries": [entry, entry]}))
        assert read_manifest(tmp_path) is None

    def test_stamp_sets_version_and_time(self):
        manifest = Manifest(generated_at="2000-01-01T00:00:00+00:00", jfp_version="0.0.1")
        stamped = stamp_manifest(manifest, "9.9.9")
        assert stamped.jfp_version == "9.9.9"
        assert stamped.generated_at != manifest.generated_at
        assert manifest.jfp_version == "0.0.1"


class TestManifestEntries:
    """Tests for the pure entry helpers."""

    def test_upsert_appends_new(self):
        manifest = upsert_manifest_entry(create_empty_manifest("0.1.0"), _entry("alpha"))
        assert manifest.ids() == ["alpha"]

    def test_upsert_replaces_in_place(self):
        manifest = Manifest(entries=[_entry("a"), _entry("b"), _entry("c")])
        updated = upsert_manifest_entry(manifest, _entry("b", "new-hash"))
        assert updated.ids() == ["a", "b", "c"]
        assert updated.get("b").hash == "new-hash"

    def test_upsert_is_pure(self):
        manifest = Manifest(entries=[_entry("a")])
        upsert_manifest_entry(manifest, _entry("a", "changed"))
        upsert_manifest_entry(manifest, _entry("z"))
        assert manifest.ids() == ["a"]
        assert manifest.get("a").hash == "h1"

    def test_remove(self):
        manifest = Manifest(entries=[_entry("a"), _entry("b")])
        assert remove_manifest_entry(manifest, "a").ids() == ["b"]
        assert manifest.ids() == ["a", "b"]

    def test_remove_absent_is_noop(self):
        manifest = Manifest(entries=[_entry("a")])
        assert remove_manifest_entry(manifest, "zzz").ids() == ["a"]

    def test_get_tolerates_none(self):
        assert get_manifest_entry(None, "a") is None


class TestModificationDetection:
    """Tests for check_skill_modification and the generated marker."""

    def _write_skill(self, root: Path, entry_id: str, content: str) -> Path:
        path = root / entry_id / "SKILL.md"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def test_no_file_can_overwrite(self, tmp_path: Path):
        result = check_skill_modification(tmp_path, "alpha", Manifest(entries=[_entry("alpha")]))
        assert result.was_modified is False
        assert result.can_overwrite is True
        assert result.exists_on_disk is False

    def test_untracked_file_is_protected(self, tmp_path: Path):
        self._write_skill(tmp_path, "alpha", "hand written")
        result = check_skill_modification(tmp_path, "alpha", create_empty_manifest("0.1.0"))
        assert result.can_overwrite is False
        assert result.tracked is False

    def test_untracked_with_no_manifest(self, tmp_path: Path):
        self._write_skill(tmp_path, "alpha", "hand written")
        assert check_skill_modification(tmp_path, "alpha", None).can_overwrite is False

    def test_unmodified(self, tmp_path: Path):
        self._write_skill(tmp_path, "alpha", "generated")
        manifest = Manifest(entries=[_entry("alpha", compute_hash("generated"))])
        result = check_skill_modification(tmp_path, "alpha", manifest)
        assert result.was_modified is False
        assert result.can_overwrite is True

    def test_modified(self, tmp_path: Path):
        self._write_skill(tmp_path, "alpha", "generated + user edit")
        manifest = Manifest(entries=[_entry("alpha", compute_hash("generated"))])
        result = check_skill_modification(tmp_path, "alpha", manifest)
        assert result.was_modified is True
        assert result.can_overwrite is False

    def test_generated_marker_in_front_matter(self, tmp_path: Path):
        path = self._write_skill(tmp_path, "a", "---\nname: a\nx_jfp_generated: true\n---\n\n# A\n")
        assert is_generated_by_tool(path) is True

    def test_marker_in_body_does_not_count(self, tmp_path: Path):
        path = self._write_skill(tmp_path, "a", "---\nname: a\n---\n\nx_jfp_generated: true\n")
        assert is_generated_by_tool(path) is False

    def test_no_front_matter(self, tmp_path: Path):
        path = self._write_skill(tmp_path, "a", "# Just markdown\n")
        assert is_generated_by_tool(path) is False

    def test_missing_file_not_generated(self, tmp_path: Path):
        assert is_generated_by_tool(tmp_path / "nope" / "SKILL.md") is False
