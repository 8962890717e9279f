"""Tests for clone, checkout, progress reporting and cleanup."""

import asyncio
import logging
import os

import pytest

from hgresolve.common.logging_utils import ResolverLogger
from hgresolve.exceptions import CleanupError, CommandError
from hgresolve.resolvers import working_copy as working_copy_module
from hgresolve.resolvers.cache import ShallowCapabilityTracker
from hgresolve.resolvers.models import BranchResolution, CommitResolution, TagResolution
from hgresolve.resolvers.working_copy import ProgressReporter, WorkingCopyManager, report_progress

SOURCE = "https://hg.example.com/repo"
SHALLOW = ["--config", "extensions.remotefilelog=", "--shallow"]


def make_manager(backend, work_dir, tracker=None, allocations=None):
    async def allocate():
        if allocations is not None:
            allocations.append(work_dir)
        os.makedirs(work_dir, exist_ok=True)
        return work_dir

    return WorkingCopyManager(
        backend,
        SOURCE,
        "hg.example.com",
        allocate,
        tracker or ShallowCapabilityTracker(),
        ResolverLogger(source=SOURCE),
        progress_delay=0.0,
        progress_interval=0.01,
        shallow_args=SHALLOW,
    )


@pytest.fixture
def work_dir(tmp_path):
    return str(tmp_path / "work")


class TestProgressReporter:
    """Tests for ProgressReporter."""

    def test_grace_delay_and_forwarding(self, caplog):
        reporter = ProgressReporter(ResolverLogger(), delay=0.05, interval=0.01)

        async def _run():
            reporter.start()
            reporter.feed("adding changesets 10%\n")
            await asyncio.sleep(0.1)
            reporter.feed("adding file changes 60%\r")
            await asyncio.sleep(0.05)
            await reporter.stop()

        with caplog.at_level(logging.INFO):
            asyncio.run(_run())

        messages = [r.getMessage() for r in caplog.records if getattr(r, "event", None) == "progress"]
        assert messages == ["progress adding file changes 60%"]

    def test_throttled_to_latest_chunk(self, caplog):
        reporter = ProgressReporter(ResolverLogger(), delay=0.0, interval=0.05)

        async def _run():
            reporter.start()
            await asyncio.sleep(0.01)
            for percent in (10, 20, 30):
                reporter.feed(f"files {percent}%\n")
            await asyncio.sleep(0.08)
            await reporter.stop()

        with caplog.at_level(logging.INFO):
            asyncio.run(_run())

        messages = [r.getMessage() for r in caplog.records if getattr(r, "event", None) == "progress"]
        assert messages == ["progress files 30%"]

    def test_lines_without_percent_ignored(self, caplog):
        reporter = ProgressReporter(ResolverLogger(), delay=0.0, interval=0.01)
        reporter.feed("requesting all changes\nadding manifests\n")

        with caplog.at_level(logging.INFO):
            reporter.flush()

        assert not caplog.records

    def test_task_cancelled_on_error(self):
        async def _run():
            with pytest.raises(CommandError):
                async with report_progress(ResolverLogger(), 10.0, 1.0) as reporter:
                    raise CommandError("hg", ["clone"], 255)
            return reporter

        reporter = asyncio.run(_run())

        assert reporter.task.done()
        assert reporter.task.cancelled()


class TestClone:
    """Tests for clone detection and cloning."""

    def test_no_clone_without_directory(self, backend, work_dir, fake_hg):
        manager = make_manager(backend, work_dir)

        assert asyncio.run(manager.has_usable_clone()) is False
        assert fake_hg.calls == []

    def test_probe_error_means_no_clone(self, backend, work_dir, fake_hg):
        manager = make_manager(backend, work_dir)
        manager.work_dir = work_dir

        assert asyncio.run(manager.has_usable_clone()) is False
        assert fake_hg.count("identify") == 1

    def test_ensure_clone_is_idempotent(self, backend, work_dir, fake_hg):
        allocations = []
        manager = make_manager(backend, work_dir, allocations=allocations)

        async def _run():
            await manager.ensure_clone()
            await manager.ensure_clone()

        asyncio.run(_run())

        assert allocations == [work_dir]
        assert fake_hg.count("clone") == 1
        assert fake_hg.args_of("clone")[0] == ["clone", "-v", SOURCE, "."]

    def test_concurrent_ensure_clone_allocates_and_clones_once(self, backend, work_dir, fake_hg):
        fake_hg.delay = 0.01
        allocations = []
        manager = make_manager(backend, work_dir, allocations=allocations)

        async def _run():
            await asyncio.gather(manager.ensure_clone(), manager.ensure_clone(), manager.ensure_dir())

        asyncio.run(_run())

        assert allocations == [work_dir]
        assert fake_hg.count("clone") == 1

    def test_clone_reports_progress(self, backend, work_dir, fake_hg, caplog):
        fake_hg.progress_chunks = ["adding file changes 42%\n"]
        manager = make_manager(backend, work_dir)

        async def _run():
            await manager.clone()

        with caplog.at_level(logging.INFO):
            asyncio.run(_run())

        assert any(getattr(r, "event", None) == "clone" for r in caplog.records)


class TestFastClone:
    """Tests for ref-restricted clones."""

    def test_shallow_fallback_marks_host(self, backend, work_dir, fake_hg):
        tracker = ShallowCapabilityTracker()
        fake_hg.fail("clone", "abort: remote does not support shallow clones")
        resolution = TagResolution(tag="v1.0.0", commit="1:aaaaaaaaaaaa")

        asyncio.run(make_manager(backend, work_dir, tracker).fast_clone(resolution))

        first, second = fake_hg.args_of("clone")
        assert "--shallow" in first
        assert "--shallow" not in second
        assert ["-r", "v1.0.0"] == second[2:4]
        assert tracker.is_known_unsupported("hg.example.com")

        asyncio.run(make_manager(backend, work_dir + "-2", tracker).fast_clone(resolution))

        assert fake_hg.count("clone") == 3
        assert "--shallow" not in fake_hg.args_of("clone")[2]

    def test_other_failures_propagate(self, backend, work_dir, fake_hg):
        tracker = ShallowCapabilityTracker()
        fake_hg.fail("clone", "abort: HTTP Error 500: Internal Server Error")
        resolution = BranchResolution(branch="default", commit="1:aaaaaaaaaaaa")

        with pytest.raises(CommandError):
            asyncio.run(make_manager(backend, work_dir, tracker).fast_clone(resolution))

        assert fake_hg.count("clone") == 1
        assert not tracker.is_known_unsupported("hg.example.com")

    def test_ref_not_found_checks_out_commit(self, backend, work_dir, fake_hg, caplog):
        fake_hg.clone_stderr = "branch v1.0.0 not found, using default\n"
        resolution = TagResolution(tag="v1.0.0", commit="1:aaaaaaaaaaaa")

        with caplog.at_level(logging.WARNING):
            asyncio.run(make_manager(backend, work_dir).fast_clone(resolution))

        assert fake_hg.args_of("checkout") == [["checkout", "aaaaaaaaaaaa"]]
        assert any(getattr(r, "event", None) == "old-hg" for r in caplog.records)

    def test_commit_uses_full_clone(self, backend, work_dir, fake_hg):
        resolution = CommitResolution(commit="a" * 40)

        asyncio.run(make_manager(backend, work_dir).fast_clone(resolution))

        assert fake_hg.args_of("clone") == [["clone", "-v", SOURCE, "."]]
        assert fake_hg.args_of("checkout") == [["checkout", "a" * 40]]


class TestCheckoutAndCleanup:
    """Tests for checkout() and cleanup()."""

    @pytest.mark.parametrize(
        "resolution,ref",
        [
            (TagResolution(tag="v1.0.0", commit="1:aaaaaaaaaaaa"), "v1.0.0"),
            (BranchResolution(branch="stable", commit="2:bbbbbbbbbbbb"), "stable"),
            (CommitResolution(commit="3:cccccccccccc"), "cccccccccccc"),
        ],
    )
    def test_checkout_ref(self, backend, work_dir, fake_hg, resolution, ref):
        manager = make_manager(backend, work_dir)

        asyncio.run(manager.checkout(resolution))

        assert fake_hg.args_of("checkout") == [["checkout", ref]]
        assert fake_hg.calls[0][2] == work_dir

    def test_cleanup_removes_metadata(self, backend, work_dir):
        manager = make_manager(backend, work_dir)
        os.makedirs(os.path.join(work_dir, ".hg", "store"))
        open(os.path.join(work_dir, "README"), "w", encoding="utf-8").close()
        manager.work_dir = work_dir

        asyncio.run(manager.cleanup())

        assert not os.path.exists(os.path.join(work_dir, ".hg"))
        assert os.path.exists(os.path.join(work_dir, "README"))

    def test_cleanup_without_metadata(self, backend, work_dir):
        manager = make_manager(backend, work_dir)
        os.makedirs(work_dir)
        manager.work_dir = work_dir

        asyncio.run(manager.cleanup())

    def test_cleanup_failure(self, backend, work_dir, monkeypatch):
        async def broken_remove(path):
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr(working_copy_module, "remove_tree", broken_remove)
        manager = make_manager(backend, work_dir)
        manager.work_dir = work_dir

        with pytest.raises(CleanupError) as excinfo:
            asyncio.run(manager.cleanup())

        assert excinfo.value.code == "ECLEANUP"
        assert excinfo.value.path.endswith(".hg")

    def test_cleanup_grants_write_on_windows(self, backend, work_dir, monkeypatch):
        modes = []

        removed = []

        async def fake_chmod(path, mode):
            modes.append((path, mode))

        async def fake_remove(path):
            removed.append(path)

        monkeypatch.setattr(working_copy_module.sys, "platform", "win32")
        monkeypatch.setattr(working_copy_module, "chmod_recursive", fake_chmod)
        monkeypatch.setattr(working_copy_module, "remove_tree", fake_remove)
        manager = make_manager(backend, work_dir)
        manager.work_dir = work_dir

        asyncio.run(manager.cleanup())

        metadata_dir = os.path.join(work_dir, ".hg")
        assert modes == [(metadata_dir, 0o777)]
        assert removed == [metadata_dir]

    def test_cleanup_missing_metadata_on_windows(self, backend, work_dir, monkeypatch):
        removed = []

        async def missing_chmod(path, mode):
            raise FileNotFoundError(path)

        async def fake_remove(path):
            removed.append(path)

        monkeypatch.setattr(working_copy_module.sys, "platform", "win32")
        monkeypatch.setattr(working_copy_module, "chmod_recursive", missing_chmod)
        monkeypatch.setattr(working_copy_module, "remove_tree", fake_remove)
        manager = make_manager(backend, work_dir)
        manager.work_dir = work_dir

        asyncio.run(manager.cleanup())

        assert removed == []
