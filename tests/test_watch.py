import threading
import time
from pathlib import Path

from blossom.build import BuildError
from blossom.watch import SiteWatcher, _ChangeHandler


class FakeEvent:
    def __init__(self, path, is_directory=False):
        self.src_path = str(path)
        self.is_directory = is_directory


def make_watcher(tmp_path, rebuild=lambda: None):
    return SiteWatcher(
        tmp_path,
        rebuild,
        source_dirs=[tmp_path / "notes", tmp_path / "css"],
        ignored=[tmp_path / "dist", tmp_path / ".blossom-manifest.json"],
    )


def test_requests_coalesce_into_one_pending_rebuild(tmp_path):
    calls = []
    watcher = make_watcher(tmp_path, lambda: calls.append(1))
    assert watcher.request_rebuild() is True
    assert watcher.request_rebuild() is False
    assert watcher.request_rebuild() is False

    assert watcher.run_pending() is True
    assert watcher.run_pending() is False
    assert calls == [1]
    assert watcher.builds == 1


def test_should_trigger_filters_paths(tmp_path):
    watcher = make_watcher(tmp_path)
    assert watcher.should_trigger(tmp_path / "notes" / "post.md")
    assert watcher.should_trigger(tmp_path / "blossom.yaml")
    assert not watcher.should_trigger(tmp_path / "README.md")
    assert not watcher.should_trigger(tmp_path / "dist" / "index.html")
    assert not watcher.should_trigger(tmp_path / ".blossom-manifest.json")


def test_handler_ignores_directories_and_output(tmp_path):
    watcher = make_watcher(tmp_path)
    handler = _ChangeHandler(watcher)
    handler.on_any_event(FakeEvent(tmp_path / "notes", is_directory=True))
    handler.on_any_event(FakeEvent(tmp_path / "dist" / "feed.xml"))
    assert watcher.run_pending() is False

    handler.on_any_event(FakeEvent(tmp_path / "css" / "style.css"))
    assert watcher.run_pending() is True


def test_failed_rebuild_is_logged_and_watching_continues(tmp_path, caplog):
    def failing():
        raise BuildError(Path("notes/bad.md"), "Invalid frontmatter YAML")

    watcher = make_watcher(tmp_path, failing)
    watcher.request_rebuild()
    assert watcher.run_pending() is True
    assert watcher.builds == 1
    assert "Build failed: notes/bad.md: Invalid frontmatter YAML" in caplog.text


def test_unexpected_error_does_not_stop_watching(tmp_path, caplog):
    def broken():
        raise ValueError("day is out of range for month")

    watcher = make_watcher(tmp_path, broken)
    watcher.request_rebuild()
    assert watcher.run_pending() is True
    assert "day is out of range for month" in caplog.text
    assert watcher.request_rebuild() is True


def test_worker_serializes_rebuilds(tmp_path):
    (tmp_path / "notes").mkdir()
    release = threading.Event()
    running = []
    overlapped = []

    def slow():
        if running:
            overlapped.append(True)
        running.append(True)
        release.wait(5)
        running.pop()

    watcher = make_watcher(tmp_path, slow)
    watcher.start()
    try:
        watcher.request_rebuild()
        deadline = time.monotonic() + 5
        while not running and time.monotonic() < deadline:
            time.sleep(0.01)
        assert watcher.request_rebuild() is True
        assert watcher.request_rebuild() is False
        release.set()
        deadline = time.monotonic() + 5
        while watcher.builds < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        release.set()
        watcher.stop()
    assert watcher.builds == 2
    assert overlapped == []
