import asyncio
import io
import logging

import pytest

from folio.build import BuildError
from folio.server import (
    DevServer,
    PreviewHandler,
    ReloadBroadcaster,
    SourceChangeHandler,
    StagedBuild,
    reload_snippet,
    source_snapshot,
)


class DummyEvent:
    def __init__(self, path, is_directory=False):
        self.src_path = str(path)
        self.is_directory = is_directory


def make_handler(root, path):
    handler = PreviewHandler.__new__(PreviewHandler)
    handler.path = path
    handler.directory = str(root)
    handler.command = "GET"
    handler.request_version = "HTTP/1.1"
    handler.headers = {}
    handler.rfile = io.BytesIO(b"")
    handler.wfile = io.BytesIO()
    handler.statuses = []
    handler.send_response = lambda code, message=None: handler.statuses.append(code)
    handler.send_header = lambda *args, **kwargs: None
    handler.end_headers = lambda: None
    handler.send_error = lambda code, *args, **kwargs: handler.statuses.append(("error", code))
    return handler


def test_ports_follow_config_and_overrides(tmp_path):
    assert (DevServer(tmp_path).http_port, DevServer(tmp_path).ws_port) == (4000, 4001)

    (tmp_path / "folio.yaml").write_text("port: 8000\nws_port: 9000\noutput_dir: public\n", encoding="utf-8")
    server = DevServer(tmp_path)
    assert (server.http_port, server.ws_port) == (8000, 9000)
    assert server.output_dir == tmp_path / "public"

    moved = DevServer(tmp_path, http_port=5055)
    assert moved.ws_port == 5056
    assert DevServer(tmp_path, http_port=5055, ws_port=6000).ws_port == 6000


def test_staged_build_publishes(monkeypatch, tmp_path):
    output = tmp_path / "output"
    output.mkdir()
    (output / "stale.html").write_text("old", encoding="utf-8")
    calls = {}

    def fake_build(root, include_drafts=False, root_url=None, clean_output=True, output_dir_override=None):
        calls.update(drafts=include_drafts, root_url=root_url, target=output_dir_override)
        (output_dir_override / "index.html").write_text("new", encoding="utf-8")

    monkeypatch.setattr("folio.server.build_site", fake_build)
    builder = StagedBuild(tmp_path, output, "http://localhost:4000")
    builder.run(include_drafts=True)

    assert calls == {"drafts": True, "root_url": "http://localhost:4000", "target": builder.staging_dir}
    assert (output / "index.html").read_text(encoding="utf-8") == "new"
    assert not (output / "stale.html").exists()
    assert not builder.staging_dir.exists()


def test_staged_build_failure_keeps_output(monkeypatch, tmp_path):
    output = tmp_path / "output"
    output.mkdir()
    (output / "index.html").write_text("old", encoding="utf-8")

    def failing_build(root, **kwargs):
        (kwargs["output_dir_override"] / "partial.html").write_text("x", encoding="utf-8")
        raise BuildError(root / "site" / "home.md", "Duplicate slug 'home'")

    monkeypatch.setattr("folio.server.build_site", failing_build)
    builder = StagedBuild(tmp_path, output, "")
    with pytest.raises(BuildError):
        builder.run(include_drafts=False)
    assert (output / "index.html").read_text(encoding="utf-8") == "old"
    assert not builder.staging_dir.exists()


def test_rebuild_publishes_and_notifies(monkeypatch, tmp_path):
    (tmp_path / "site").mkdir()
    (tmp_path / "site" / "about.md").write_text("hi", encoding="utf-8")
    server = DevServer(tmp_path)
    server.settle_seconds = server.debounce_seconds = 0
    events = []
    monkeypatch.setattr(server.builder, "run", lambda include_drafts: events.append(("build", include_drafts)))
    monkeypatch.setattr(server.broadcaster, "notify", lambda: events.append("reload"))

    assert server.rebuild(include_drafts=True) is True
    assert events == [("build", True), "reload"]

    # unchanged sources
    assert server.rebuild(include_drafts=True) is False
    assert len(events) == 2

    (tmp_path / "site" / "about.md").write_text("changed text", encoding="utf-8")
    assert server.rebuild(include_drafts=True) is True
    assert len(events) == 4


def test_rebuild_failure_is_logged(monkeypatch, tmp_path, caplog):
    (tmp_path / "site").mkdir()
    (tmp_path / "site" / "home.md").write_text("x", encoding="utf-8")
    server = DevServer(tmp_path)
    notified = []

    def failing_run(include_drafts):
        raise BuildError(tmp_path / "site" / "home.md", "Duplicate slug 'home'")

    monkeypatch.setattr(server.builder, "run", failing_run)
    monkeypatch.setattr(server.broadcaster, "notify", lambda: notified.append(True))
    with caplog.at_level(logging.ERROR, logger="folio.server"):
        assert server.rebuild(include_drafts=False) is False
    assert "Duplicate slug 'home'" in caplog.text
    assert not notified
    assert not server._lock.locked()


def test_rebuild_is_not_reentrant(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    monkeypatch.setattr(server.builder, "run", lambda include_drafts: pytest.fail("should not build"))
    server._lock.acquire()
    try:
        assert server.rebuild(include_drafts=False) is False
        # left for the rebuild that holds the lock
        assert server._pending is True
    finally:
        server._lock.release()


def test_save_during_rebuild_triggers_another_build(monkeypatch, tmp_path):
    source = tmp_path / "site" / "about.md"
    source.parent.mkdir()
    source.write_text("first", encoding="utf-8")
    server = DevServer(tmp_path)
    server.settle_seconds = server.debounce_seconds = 0
    monkeypatch.setattr(server.broadcaster, "notify", lambda: None)
    builds = []
    nested = []

    def run(include_drafts):
        builds.append(source.read_text(encoding="utf-8"))
        if len(builds) == 1:
            source.write_text("second, longer save", encoding="utf-8")
            nested.append(server.rebuild(include_drafts))

    monkeypatch.setattr(server.builder, "run", run)
    assert server.rebuild(include_drafts=False) is True
    assert nested == [False]
    assert builds == ["first", "second, longer save"]
    assert server._pending is False
    assert not server._lock.locked()


def test_source_snapshot(tmp_path):
    (tmp_path / "site" / "posts").mkdir(parents=True)
    (tmp_path / "data").mkdir()
    (tmp_path / "site" / "posts" / "a.md").write_text("hi", encoding="utf-8")
    (tmp_path / "data" / "site.yaml").write_text("title: t", encoding="utf-8")
    (tmp_path / "folio.yaml").write_text("port: 4000", encoding="utf-8")
    (tmp_path / "site" / "dangling.md").symlink_to(tmp_path / "nope.md")

    snapshot = source_snapshot([tmp_path / "site", tmp_path / "data"], tmp_path)
    names = [entry[0] for entry in snapshot]
    assert names == ["site/posts/a.md", "data/site.yaml", "folio.yaml"]
    assert source_snapshot([], tmp_path / "empty") is None


def test_change_handler_filters_events(tmp_path):
    server = DevServer(tmp_path)
    hits = []
    server.rebuild = lambda include_drafts: hits.append(include_drafts)
    handler = SourceChangeHandler(server, include_drafts=True)

    handler.on_any_event(DummyEvent(server.output_dir / "index.html"))
    handler.on_any_event(DummyEvent(server.builder.staging_dir / "index.html"))
    handler.on_any_event(DummyEvent(tmp_path / "site" / ".ipynb_checkpoints" / "a.ipynb"))
    handler.on_any_event(DummyEvent(tmp_path / "site", is_directory=True))
    assert hits == []

    handler.on_any_event(DummyEvent(tmp_path / "site" / "about.md"))
    handler.on_any_event(DummyEvent(tmp_path / "folio.yaml"))
    assert hits == [True, True]


def test_watch_schedules_sources(monkeypatch, tmp_path):
    (tmp_path / "site").mkdir()
    (tmp_path / "assets").mkdir()
    server = DevServer(tmp_path)
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append((path, recursive))

        def start(self):
            scheduled.append("started")

        def stop(self):
            scheduled.append("stopped")

        def join(self):
            scheduled.append("joined")

    monkeypatch.setattr("folio.server.Observer", DummyObserver)
    server.watch(include_drafts=False)
    assert scheduled == [
        (str(tmp_path / "site"), True),
        (str(tmp_path / "assets"), True),
        (str(tmp_path), False),
        "started",
    ]
    server.stop()
    assert scheduled[-2:] == ["stopped", "joined"]


def test_broadcaster_drops_failing_clients():
    broadcaster = ReloadBroadcaster(4001)

    class Client:
        def __init__(self):
            self.messages = []

        async def send(self, payload):
            self.messages.append(payload)

    class Broken:
        async def send(self, payload):
            raise ConnectionError("gone")

    good, bad = Client(), Broken()
    broadcaster.clients = {good, bad}
    asyncio.run(broadcaster.send_all('{"type": "reload"}'))
    assert good.messages == ['{"type": "reload"}']
    assert broadcaster.clients == {good}


def test_broadcaster_register_and_notify(monkeypatch):
    broadcaster = ReloadBroadcaster(4001)

    class Client:
        async def wait_closed(self):
            assert self in broadcaster.clients

    client = Client()
    asyncio.run(broadcaster.register(client))
    assert client not in broadcaster.clients

    scheduled = []

    def fake_threadsafe(coro, loop):
        scheduled.append(loop)
        coro.close()

    monkeypatch.setattr("folio.server.asyncio.run_coroutine_threadsafe", fake_threadsafe)
    broadcaster.notify()
    assert scheduled == [broadcaster.loop]


def test_handler_injects_snippet_into_pages(tmp_path):
    (tmp_path / "about").mkdir()
    (tmp_path / "about" / "index.html").write_text("<html><body>About</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/about/")
    assert PreviewHandler.send_head(handler) is None
    body = handler.wfile.getvalue().decode("utf-8")
    assert handler.statuses == [200]
    assert body.endswith(PreviewHandler.snippet + "</body></html>")


def test_handler_appends_snippet_without_body(tmp_path):
    (tmp_path / "plain.html").write_text("<p>bare</p>", encoding="utf-8")
    handler = make_handler(tmp_path, "/plain.html")
    PreviewHandler.send_head(handler)
    assert handler.wfile.getvalue().decode("utf-8") == "<p>bare</p>" + PreviewHandler.snippet


def test_handler_passes_through_static_files(tmp_path):
    (tmp_path / "style.css").write_text("body{}", encoding="utf-8")
    handler = make_handler(tmp_path, "/style.css")
    result = PreviewHandler.send_head(handler)
    assert result is not None
    result.close()


def test_missing_path_serves_custom_404(tmp_path):
    (tmp_path / "404.html").write_text("<html><body>oops</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/missing/")
    assert PreviewHandler.send_head(handler) is None
    assert handler.statuses == [404]
    assert b"oops" in handler.wfile.getvalue()


def test_directory_without_index_is_404(tmp_path):
    (tmp_path / "posts").mkdir()
    handler = make_handler(tmp_path, "/posts/")
    PreviewHandler.send_head(handler)
    assert handler.statuses == [("error", 404)]


def test_reload_snippet_uses_port():
    assert ":5051" in reload_snippet(5051)
    assert "location.reload()" in reload_snippet(5051)
