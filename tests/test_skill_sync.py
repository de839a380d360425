"""
Tests for the skill synchronizer — install, update and uninstall batches.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from jfp.core.models.catalog import Bundle, Catalog
from jfp.core.persistence import json_file
from jfp.core.persistence.manifest import MANIFEST_FILE, read_manifest
from jfp.core.services.hashing import compute_hash, hash_file
from jfp.core.services.skill_render import render_entry
from jfp.core.services.skill_sync import (
    REASON_MODIFIED,
    REASON_NOT_FOUND,
    REASON_NOT_GENERATED,
    REASON_NOT_IN_REGISTRY,
    REASON_NOT_INSTALLED,
    REASON_UNKNOWN_ID,
    REASON_UNTRACKED,
    Outcome,
    SkillSynchronizer,
    install_skills,
    uninstall_skills,
    update_skills,
)
from tests.helpers import make_catalog, make_prompt


def _skill(root: Path, entry_id: str) -> Path:
    return root / entry_id / "SKILL.md"


def _outcomes(report) -> dict[str, Outcome]:
    return {r.id: r.outcome for r in report.results}


def _install(root: Path, catalog: Catalog, *ids: str, **kwargs):
    entries = [catalog.get_prompt(i) or catalog.get_bundle(i) for i in ids]
    return install_skills(root, catalog, entries, **kwargs)


def _bump(catalog: Catalog, entry_id: str, **changes) -> Catalog:
    """A copy of ``catalog`` with one prompt changed upstream."""
    prompts = [
        p.model_copy(update=changes) if p.id == entry_id else p
        for p in catalog.prompts
    ]
    return Catalog(version="v2", prompts=prompts, bundles=catalog.bundles)


class TestInstall:
    """Tests for install batches."""

    def test_installs_files_and_manifest(self, skills_root: Path, catalog: Catalog):
        report = _install(skills_root, catalog, "alpha", "beta")

        assert _outcomes(report) == {"alpha": Outcome.INSTALLED, "beta": Outcome.INSTALLED}
        assert report.ok
        assert report.manifest_written
        content = _skill(skills_root, "alpha").read_text()
        assert content == render_entry(catalog.get_prompt("alpha"), catalog)

        manifest = read_manifest(skills_root)
        assert manifest.ids() == ["alpha", "beta"]
        assert manifest.get("alpha").hash == compute_hash(content)
        assert manifest.get("alpha").kind == "prompt"

    def test_reinstall_is_unchanged(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        manifest_before = (skills_root / MANIFEST_FILE).read_text()

        report = _install(skills_root, catalog, "alpha")

        assert _outcomes(report) == {"alpha": Outcome.UNCHANGED}
        assert report.manifest_written is False
        assert (skills_root / MANIFEST_FILE).read_text() == manifest_before

    def test_missing_file_is_reinstalled(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        _skill(skills_root, "alpha").unlink()

        report = _install(skills_root, catalog, "alpha")

        assert _outcomes(report) == {"alpha": Outcome.INSTALLED}
        assert _skill(skills_root, "alpha").is_file()

    def test_untracked_file_is_protected(self, skills_root: Path, catalog: Catalog):
        path = _skill(skills_root, "alpha")
        path.parent.mkdir(parents=True)
        path.write_text("my own skill")

        report = _install(skills_root, catalog, "alpha")

        result = report.results[0]
        assert result.outcome == Outcome.SKIPPED
        assert result.reason == REASON_UNTRACKED
        assert result.protected
        assert path.read_text() == "my own skill"

    def test_untracked_file_overwritten_with_force(self, skills_root: Path, catalog: Catalog):
        path = _skill(skills_root, "alpha")
        path.parent.mkdir(parents=True)
        path.write_text("my own skill")

        report = _install(skills_root, catalog, "alpha", force=True)

        assert _outcomes(report) == {"alpha": Outcome.INSTALLED}
        assert read_manifest(skills_root).get("alpha") is not None

    def test_identical_untracked_file_is_adopted(self, skills_root: Path, catalog: Catalog):
        path = _skill(skills_root, "alpha")
        path.parent.mkdir(parents=True)
        path.write_text(render_entry(catalog.get_prompt("alpha"), catalog))

        report = _install(skills_root, catalog, "alpha")

        assert _outcomes(report) == {"alpha": Outcome.UNCHANGED}
        assert read_manifest(skills_root).ids() == ["alpha"]

    def test_unknown_ids_fail_without_stopping_batch(self, skills_root: Path, catalog: Catalog):
        entries = [catalog.get_prompt("alpha")]
        report = install_skills(skills_root, catalog, entries, missing_ids=["ghost"])

        assert _outcomes(report) == {"ghost": Outcome.FAILED, "alpha": Outcome.INSTALLED}
        assert report.results[0].reason == REASON_UNKNOWN_ID
        assert report.ok is False

    def test_bundle_is_one_entry(self, skills_root: Path, catalog: Catalog):
        report = _install(skills_root, catalog, "starter")

        assert _outcomes(report) == {"starter": Outcome.INSTALLED}
        manifest = read_manifest(skills_root)
        assert manifest.ids() == ["starter"]
        assert manifest.get("starter").kind == "bundle"
        text = _skill(skills_root, "starter").read_text()
        assert "Do the alpha thing." in text and "Do the beta thing." in text

    def test_prompt_and_bundle_sharing_an_id(self, skills_root: Path):
        dup_bundle = Bundle(id="dup", title="Dup", description="Same id", prompt_ids=["dup"])
        catalog = make_catalog(make_prompt("dup"), bundles=[dup_bundle])
        entries = [catalog.get_prompt("dup"), catalog.get_bundle("dup")]

        report = install_skills(skills_root, catalog, entries)

        assert [(r.kind, r.outcome) for r in report.results] == [
            ("prompt", Outcome.INSTALLED),
            ("bundle", Outcome.FAILED),
        ]
        assert report.results[1].reason == "id conflicts with prompt 'dup'"
        assert _skill(skills_root, "dup").read_text() == render_entry(entries[0], catalog)
        assert read_manifest(skills_root).get("dup").kind == "prompt"

    def test_same_entry_twice_is_installed_once(self, skills_root: Path, catalog: Catalog):
        report = _install(skills_root, catalog, "alpha", "alpha")
        assert [r.outcome for r in report.results] == [Outcome.INSTALLED]

    def test_dry_run_writes_nothing(self, skills_root: Path, catalog: Catalog):
        report = _install(skills_root, catalog, "alpha", dry_run=True)

        assert _outcomes(report) == {"alpha": Outcome.INSTALLED}
        assert report.dry_run
        assert not skills_root.exists()


class TestUnsafeIds:
    """Unsafe ids fail per entry before touching the filesystem."""

    @pytest.mark.parametrize("bad_id", ["../../etc", "-flag", "a/b", "UP"])
    def test_install_rejects(self, skills_root: Path, bad_id: str):
        evil = make_prompt("placeholder").model_copy(update={"id": bad_id})
        catalog = make_catalog(evil, make_prompt("fine"))

        report = install_skills(skills_root, catalog, [evil, catalog.get_prompt("fine")])

        assert _outcomes(report) == {bad_id: Outcome.FAILED, "fine": Outcome.INSTALLED}
        assert "unsafe id" in report.results[0].reason
        assert sorted(p.name for p in skills_root.iterdir()) == ["fine", MANIFEST_FILE]

    def test_update_rejects_unsafe_manifest_entry(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        data = json.loads((skills_root / MANIFEST_FILE).read_text())
        evil = dict(data["entries"][0], id="../outside")
        data["entries"].append(evil)
        (skills_root / MANIFEST_FILE).write_text(json.dumps(data))

        report = update_skills(skills_root, catalog)

        assert _outcomes(report)["../outside"] == Outcome.FAILED
        assert _outcomes(report)["alpha"] == Outcome.UNCHANGED

    def test_uninstall_rejects(self, skills_root: Path):
        report = uninstall_skills(skills_root, ["../../etc"])
        assert report.results[0].outcome == Outcome.FAILED


class TestUpdate:
    """Tests for update batches."""

    def test_idempotent_second_run(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha", "beta", "starter")

        first = update_skills(skills_root, catalog)
        with patch("jfp.core.services.skill_sync.write_text_atomic") as writer:
            second = update_skills(skills_root, catalog)

        assert set(_outcomes(first).values()) == {Outcome.UNCHANGED}
        assert set(_outcomes(second).values()) == {Outcome.UNCHANGED}
        writer.assert_not_called()
        assert second.manifest_written is False

    def test_upstream_change_updates(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha", "beta")
        newer = _bump(catalog, "alpha", content="Improved wording.", version="1.1.0")

        report = update_skills(skills_root, newer)

        assert _outcomes(report) == {"alpha": Outcome.UPDATED, "beta": Outcome.UNCHANGED}
        assert "Improved wording." in _skill(skills_root, "alpha").read_text()
        entry = read_manifest(skills_root).get("alpha")
        assert entry.version == "1.1.0"
        assert entry.hash == hash_file(_skill(skills_root, "alpha"))

    def test_processes_in_manifest_order(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "beta", "alpha")
        report = update_skills(skills_root, catalog)
        assert [r.id for r in report.results] == ["beta", "alpha"]

    def test_user_edit_is_protected(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        path = _skill(skills_root, "alpha")
        edited = path.read_text() + "\nMy local tweak.\n"
        path.write_text(edited)
        newer = _bump(catalog, "alpha", content="Upstream change.")

        report = update_skills(skills_root, newer)

        result = report.results[0]
        assert result.outcome == Outcome.SKIPPED
        assert result.reason == REASON_MODIFIED
        assert report.has_protected_skips
        assert path.read_text() == edited

    def test_non_utf8_edit_is_protected(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        path = _skill(skills_root, "alpha")
        with path.open("ab") as f:
            f.write("café".encode("latin-1"))
        edited = path.read_bytes()
        newer = _bump(catalog, "alpha", content="Upstream change.")

        report = update_skills(skills_root, newer)

        assert report.results[0].outcome == Outcome.SKIPPED
        assert report.results[0].reason == REASON_MODIFIED
        assert report.ok
        assert path.read_bytes() == edited

    def test_line_ending_only_edit_is_detected(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        path = _skill(skills_root, "alpha")
        path.write_bytes(path.read_bytes().replace(b"\n", b"\r\n"))
        newer = _bump(catalog, "alpha", content="Upstream change.")

        report = update_skills(skills_root, newer)

        assert report.results[0].reason == REASON_MODIFIED

    def test_force_overwrites_user_edit(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        path = _skill(skills_root, "alpha")
        path.write_text(path.read_text() + "\nMy local tweak.\n")
        newer = _bump(catalog, "alpha", content="Upstream change.")

        report = update_skills(skills_root, newer, force=True)

        assert _outcomes(report) == {"alpha": Outcome.UPDATED}
        fresh = render_entry(newer.get_prompt("alpha"), newer)
        assert path.read_text() == fresh
        assert read_manifest(skills_root).get("alpha").hash == compute_hash(fresh)

    def test_force_restores_edit_without_upstream_change(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        path = _skill(skills_root, "alpha")
        path.write_text("scribbles")

        assert _outcomes(update_skills(skills_root, catalog)) == {"alpha": Outcome.UNCHANGED}
        report = update_skills(skills_root, catalog, force=True)

        assert _outcomes(report) == {"alpha": Outcome.UPDATED}
        assert path.read_text() == render_entry(catalog.get_prompt("alpha"), catalog)

    def test_foreign_file_is_protected(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        _skill(skills_root, "alpha").write_text("# Rewritten by hand, no front matter\n")
        newer = _bump(catalog, "alpha", content="Upstream change.")

        report = update_skills(skills_root, newer)

        assert report.results[0].reason == REASON_NOT_GENERATED
        assert report.results[0].protected

    def test_deleted_file_is_not_recreated(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        _skill(skills_root, "alpha").unlink()
        newer = _bump(catalog, "alpha", content="Upstream change.")

        report = update_skills(skills_root, newer)

        assert report.results[0].outcome == Outcome.SKIPPED
        assert report.results[0].reason == REASON_NOT_FOUND
        assert not _skill(skills_root, "alpha").exists()

    def test_removed_upstream_is_kept(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha", "beta")
        shrunk = make_catalog(catalog.get_prompt("beta"))

        report = update_skills(skills_root, shrunk)

        assert report.results[0].reason == REASON_NOT_IN_REGISTRY
        assert _skill(skills_root, "alpha").is_file()
        assert read_manifest(skills_root).ids() == ["alpha", "beta"]

    def test_bundle_member_change_updates_bundle(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "starter")
        newer = _bump(catalog, "beta", content="Beta v2.")

        report = update_skills(skills_root, newer)

        assert _outcomes(report) == {"starter": Outcome.UPDATED}
        assert "Beta v2." in _skill(skills_root, "starter").read_text()

    def test_edited_bundle_is_protected(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "starter")
        path = _skill(skills_root, "starter")
        path.write_text(path.read_text() + "extra\n")
        newer = _bump(catalog, "beta", content="Beta v2.")

        report = update_skills(skills_root, newer)

        assert report.results[0].reason == REASON_MODIFIED

    def test_dry_run_with_diff(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        before_file = _skill(skills_root, "alpha").read_text()
        before_manifest = (skills_root / MANIFEST_FILE).read_text()
        newer = _bump(catalog, "alpha", content="Upstream change.")

        report = update_skills(skills_root, newer, dry_run=True, with_diff=True)

        result = report.results[0]
        assert result.outcome == Outcome.UPDATED
        assert "+Upstream change." in result.diff
        assert _skill(skills_root, "alpha").read_text() == before_file
        assert (skills_root / MANIFEST_FILE).read_text() == before_manifest

    def test_corrupt_manifest_means_nothing_installed(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        (skills_root / MANIFEST_FILE).write_text("garbage")

        report = update_skills(skills_root, catalog)

        assert report.results == []
        assert report.ok

    def test_no_manifest(self, skills_root: Path, catalog: Catalog):
        report = update_skills(skills_root, catalog)
        assert report.results == []
        assert not skills_root.exists()


class TestFailures:
    """Per-entry I/O failures and manifest write failures."""

    def test_write_failure_is_per_entry(self, skills_root: Path, catalog: Catalog):
        real_write = json_file.write_text_atomic

        def flaky(path: Path, content: str) -> None:
            if path.parent.name == "alpha":
                raise PermissionError("permission denied")
            real_write(path, content)

        with patch("jfp.core.services.skill_sync.write_text_atomic", side_effect=flaky):
            report = _install(skills_root, catalog, "alpha", "beta")

        assert _outcomes(report) == {"alpha": Outcome.FAILED, "beta": Outcome.INSTALLED}
        assert "permission denied" in report.results[0].reason
        assert read_manifest(skills_root).ids() == ["beta"]

    def test_manifest_write_failure_is_reported(self, skills_root: Path, catalog: Catalog):
        with patch(
            "jfp.core.services.skill_sync.write_manifest",
            side_effect=OSError("disk full"),
        ):
            report = _install(skills_root, catalog, "alpha")

        assert _outcomes(report) == {"alpha": Outcome.INSTALLED}
        assert report.manifest_error.startswith("files written but manifest may be out of sync")
        assert report.ok is False
        assert report.to_dict()["manifest_error"] == report.manifest_error

    def test_manifest_written_once_per_batch(self, skills_root: Path, catalog: Catalog):
        with patch("jfp.core.services.skill_sync.write_manifest") as writer:
            _install(skills_root, catalog, "alpha", "beta", "starter")
        assert writer.call_count == 1


class TestUninstall:
    """Tests for uninstall batches."""

    def test_removes_file_dir_and_entry(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha", "beta")

        report = uninstall_skills(skills_root, ["alpha"])

        assert _outcomes(report) == {"alpha": Outcome.REMOVED}
        assert not (skills_root / "alpha").exists()
        assert read_manifest(skills_root).ids() == ["beta"]

    def test_not_installed(self, skills_root: Path):
        report = uninstall_skills(skills_root, ["ghost"])
        assert report.results[0].reason == REASON_NOT_INSTALLED

    def test_already_absent_drops_entry(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        _skill(skills_root, "alpha").unlink()

        report = uninstall_skills(skills_root, ["alpha"])

        assert _outcomes(report) == {"alpha": Outcome.REMOVED}
        assert read_manifest(skills_root).ids() == []

    def test_edited_file_needs_force(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        path = _skill(skills_root, "alpha")
        path.write_text("edited")

        report = uninstall_skills(skills_root, ["alpha"])
        assert report.results[0].reason == REASON_MODIFIED
        assert path.exists()

        forced = uninstall_skills(skills_root, ["alpha"], force=True)
        assert _outcomes(forced) == {"alpha": Outcome.REMOVED}
        assert not path.exists()

    def test_keeps_directory_with_other_files(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        (skills_root / "alpha" / "notes.txt").write_text("mine")

        uninstall_skills(skills_root, ["alpha"])

        assert (skills_root / "alpha" / "notes.txt").is_file()
        assert not _skill(skills_root, "alpha").exists()

    def test_dry_run(self, skills_root: Path, catalog: Catalog):
        _install(skills_root, catalog, "alpha")
        report = uninstall_skills(skills_root, ["alpha"], dry_run=True)
        assert _outcomes(report) == {"alpha": Outcome.REMOVED}
        assert _skill(skills_root, "alpha").exists()
        assert read_manifest(skills_root).ids() == ["alpha"]


class TestReport:
    """Tests for SyncReport aggregation."""

    def test_counts_and_dict(self, skills_root: Path, catalog: Catalog):
        sync = SkillSynchronizer(skills_root, catalog)
        report = sync.install([catalog.get_prompt("alpha")], missing_ids=["nope"])

        assert report.counts["installed"] == 1
        assert report.counts["failed"] == 1
        assert report.counts["skipped"] == 0
        data = report.to_dict()
        assert data["action"] == "install"
        assert [r["outcome"] for r in data["results"]] == ["failed", "installed"]

    def test_bundle_kind_preserved_on_skip(self, skills_root: Path):
        bundle = Bundle(id="pack", title="Pack", prompt_ids=[])
        catalog = make_catalog(bundles=[bundle])
        path = _skill(skills_root, "pack")
        path.parent.mkdir(parents=True)
        path.write_text("mine")

        report = install_skills(skills_root, catalog, [bundle])

        assert report.results[0].kind == "bundle"
