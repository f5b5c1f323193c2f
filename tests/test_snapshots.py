# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.21
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_snapshots.py

import os
from datetime import datetime

import pytest

from appbackup.storage.snapshots import (
    CURRENT,
    INCOMPLETE_MARKER,
    LEGACY_STRATEGY,
    SnapshotDirectoryManager,
)
from appbackup.system.exceptions import AllocationError, SnapshotNotFound


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


class TestAllocate:
    def test_allocate_creates_incomplete_directory(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)

        snapshot_id = manager.allocate()

        assert snapshot_id == "20250715T031500"
        assert (data_dir / snapshot_id).is_dir()
        assert (data_dir / snapshot_id / INCOMPLETE_MARKER).exists()
        assert not (data_dir / CURRENT).exists()

    def test_allocate_same_second_collides(self, data_dir):
        fixed = datetime(2025, 7, 15, 3, 15, 0)
        manager = SnapshotDirectoryManager(data_dir, now=lambda: fixed)
        manager.allocate()

        with pytest.raises(AllocationError) as exc_info:
            manager.allocate()
        assert exc_info.value.phase == "allocate"


class TestPromote:
    def test_promote_repoints_current_and_clears_marker(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        first = manager.allocate()

        manager.promote(first)

        link = data_dir / CURRENT
        assert link.is_symlink()
        assert os.readlink(link) == first  # relative target
        assert manager.is_complete(manager.resolve())
        assert not list(data_dir.glob(".current.*"))

    def test_promote_replaces_existing_pointer(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        first = manager.allocate()
        manager.promote(first)
        second = manager.allocate()

        manager.promote(second)

        assert manager.resolve().snapshot_id == second
        assert (data_dir / first).is_dir()

    def test_promote_unknown_snapshot(self, data_dir):
        manager = SnapshotDirectoryManager(data_dir)

        with pytest.raises(SnapshotNotFound):
            manager.promote("19700101T000000")


class TestResolve:
    def test_resolve_current_without_snapshots(self, data_dir):
        with pytest.raises(SnapshotNotFound, match="No current snapshot"):
            SnapshotDirectoryManager(data_dir).resolve()

    def test_resolve_explicit_id(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        first = manager.allocate()
        manager.promote(first)
        second = manager.allocate()
        manager.promote(second)

        snapshot = manager.resolve(first)

        assert snapshot.snapshot_id == first
        assert snapshot.path == data_dir / first

    def test_resolve_missing_id(self, data_dir):
        data_dir.mkdir()

        with pytest.raises(SnapshotNotFound, match="doesn't exist"):
            SnapshotDirectoryManager(data_dir).resolve("20240101T000000")

    def test_resolve_refuses_pointer_as_id(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        manager.promote(manager.allocate())
        (data_dir / "alias").symlink_to(manager.resolve().snapshot_id)

        with pytest.raises(SnapshotNotFound):
            manager.resolve("alias")

    @pytest.mark.parametrize("ref", ["..", ".", "", "a/b", "alias", "20240101T000000/..", "2024-01-01"])
    def test_resolve_rejects_refs_that_are_not_ids(self, data_dir, ref):
        (data_dir / "a" / "b").mkdir(parents=True)
        (data_dir / "alias").mkdir()
        (data_dir / "2024-01-01").mkdir()

        with pytest.raises(SnapshotNotFound, match="is not a snapshot id"):
            SnapshotDirectoryManager(data_dir).resolve(ref)

    def test_resolve_refuses_symlink_with_id_name(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        manager.promote(manager.allocate())
        (data_dir / "20240101T000000").symlink_to(manager.resolve().snapshot_id)

        with pytest.raises(SnapshotNotFound, match="doesn't exist"):
            manager.resolve("20240101T000000")

    def test_dangling_current_is_treated_as_absent(self, data_dir):
        data_dir.mkdir()
        (data_dir / CURRENT).symlink_to("20240101T000000")

        manager = SnapshotDirectoryManager(data_dir)

        assert manager.previous() is None
        with pytest.raises(SnapshotNotFound):
            manager.resolve()


class TestPrevious:
    def test_previous_captured_before_promotion(self, data_dir, ticking_now):
        SnapshotDirectoryManager(data_dir, now=ticking_now).promote(
            SnapshotDirectoryManager(data_dir, now=ticking_now).allocate()
        )
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        before = manager.previous()

        manager.promote(manager.allocate())

        assert manager.previous() == before
        assert manager.resolve().snapshot_id != before.snapshot_id

    def test_no_previous_on_first_run(self, data_dir):
        assert SnapshotDirectoryManager(data_dir).previous() is None


class TestMarkers:
    def test_strategy_round_trip(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        snapshot_id = manager.allocate()

        manager.write_strategy(snapshot_id, "rsync")

        assert manager.read_strategy(manager.resolve(snapshot_id)) == "rsync"

    def test_missing_strategy_marker_means_legacy(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        snapshot_id = manager.allocate()

        assert manager.read_strategy(manager.resolve(snapshot_id)) == LEGACY_STRATEGY == "tarball"

    def test_version_marker(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        snapshot_id = manager.allocate()

        manager.write_version(snapshot_id, "2.21.3")

        assert (data_dir / snapshot_id / "version").read_text() == "2.21.3\n"

    def test_incomplete_until_promoted(self, data_dir, ticking_now):
        manager = SnapshotDirectoryManager(data_dir, now=ticking_now)
        snapshot_id = manager.allocate()

        assert manager.is_complete(manager.resolve(snapshot_id)) is False
        manager.promote(snapshot_id)
        assert manager.is_complete(manager.resolve(snapshot_id)) is True
