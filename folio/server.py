"""Local preview server for Folio.

``folio serve`` builds the site, serves the output over HTTP and rebuilds
whenever a source file changes. Open browser tabs are told to reload over
a websocket.

A rebuild is written into a staging directory and only swapped in once it
succeeded, so a broken source file never takes the preview down; the last
good build keeps being served until the error is fixed.

Key classes:
- DevServer: Wires the pieces below together and runs them.
- StagedBuild: Builds into a staging directory and publishes it.
- ReloadBroadcaster: Websocket endpoint that pushes reload messages.
- PreviewHandler: HTTP handler with reload injection and real 404s.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
import shutil
import threading
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import CONFIG_FILENAME, BuildError, build_site, load_config

logger = logging.getLogger(__name__)

SOURCE_FOLDERS = ("assets", "data")
IGNORED_PARTS = {".git", ".ipynb_checkpoints", "__pycache__"}

RELOAD_SNIPPET = """<script>
(function () {{
  var socket = new WebSocket("ws://" + location.hostname + ":{port}");
  socket.addEventListener("message", function (event) {{
    if (JSON.parse(event.data).type === "reload") {{ location.reload(); }}
  }});
}})();
</script>"""


def reload_snippet(port: int) -> str:
    return RELOAD_SNIPPET.format(port=port)


def source_snapshot(roots: list[Path], project_root: Path) -> tuple | None:
    """Fingerprint every file under roots plus folio.yaml.

    Returns:
        A tuple of (relative path, mtime, size) entries, or None when there
        is nothing to watch.
    """
    entries: list[tuple[str, int, int]] = []
    files = [p for root in roots for p in sorted(root.rglob("*"))]
    config = project_root / CONFIG_FILENAME
    if config.exists():
        files.append(config)
    for path in files:
        try:
            if not path.is_file():
                continue
            info = path.stat()
        except OSError:
            continue
        entries.append((path.relative_to(project_root).as_posix(), info.st_mtime_ns, info.st_size))
    return tuple(entries) or None


class StagedBuild:
    """Runs builds into ``<output>.staging`` and swaps the result into place."""

    def __init__(self, project_root: Path, output_dir: Path, root_url: str):
        self.project_root = project_root
        self.output_dir = output_dir
        self.staging_dir = output_dir.with_name(output_dir.name + ".staging")
        self.root_url = root_url

    def run(self, include_drafts: bool) -> None:
        """Build and publish.

        Raises:
            BuildError: If the build failed; the published output is untouched.
        """
        self._reset_staging()
        try:
            build_site(
                self.project_root,
                include_drafts=include_drafts,
                root_url=self.root_url,
                clean_output=True,
                output_dir_override=self.staging_dir,
            )
        except BuildError:
            shutil.rmtree(self.staging_dir, ignore_errors=True)
            raise
        self._publish()

    def _reset_staging(self) -> None:
        if self.staging_dir.exists():
            shutil.rmtree(self.staging_dir)
        self.staging_dir.mkdir(parents=True)

    def _publish(self) -> None:
        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        os.replace(self.staging_dir, self.output_dir)


class ReloadBroadcaster:
    """Websocket endpoint that tells connected pages to reload."""

    def __init__(self, port: int):
        self.port = port
        self.clients: set = set()
        self.loop = asyncio.new_event_loop()

    def run(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self._serve())
        except OSError as exc:
            logger.error("Live reload failed to start on port %d: %s", self.port, exc)

    async def _serve(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self.register, "0.0.0.0", self.port):
            await asyncio.Future()

    async def register(self, websocket) -> None:
        self.clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self.clients.discard(websocket)

    def notify(self) -> None:
        payload = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self.send_all(payload), self.loop)

    async def send_all(self, payload: str) -> None:
        for client in list(self.clients):
            try:
                await client.send(payload)
            except Exception as exc:
                logger.debug("Dropping reload client: %s", exc)
                self.clients.discard(client)

    def close(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)


class PreviewHandler(SimpleHTTPRequestHandler):
    """Serves the build output.

    HTML documents get the reload snippet appended before ``</body>``.
    Directories without ``index.html`` and missing paths answer 404 with the
    site's own 404 page when it has one.
    """

    snippet = reload_snippet(4001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-store")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug("%s %s", self.address_string(), format % args)

    def list_directory(self, path):  # pragma: no cover - send_head answers first
        return self.not_found()

    def send_head(self):
        target = Path(self.translate_path(self.path))
        if target.is_dir():
            target = target / "index.html"
        if not target.is_file():
            return self.not_found()
        if target.suffix == ".html":
            self.send_document(200, target)
            return None
        return super().send_head()

    def not_found(self):
        root = Path(self.directory)
        for candidate in (root / "404.html", root / "404" / "index.html"):
            if candidate.is_file():
                self.send_document(404, candidate)
                return None
        self.send_error(404, "File not found")
        return None

    def send_document(self, status: int, path: Path) -> None:
        html = path.read_text(encoding="utf-8")
        if "</body>" in html:
            html = html.replace("</body>", self.snippet + "</body>", 1)
        else:
            html += self.snippet
        payload = html.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)


class DevServer:
    """Development server: build, serve, watch, rebuild, reload.

    Attributes:
        project_root: Root directory of the project.
        output_dir: Directory that is served.
        site_dir: Directory with the authored pages.
        http_port: Port of the HTTP server.
        ws_port: Port of the live reload websocket.
    """

    debounce_seconds = 0.05
    settle_seconds = 0.05

    def __init__(self, project_root: Path, http_port: int | None = None, ws_port: int | None = None):
        config = load_config(project_root)
        self.project_root = project_root
        self.output_dir = project_root / config["output_dir"]
        self.site_dir = project_root / config["site_dir"]
        self.http_port = int(http_port or config["port"])
        if ws_port is None:
            # An explicit --port moves the websocket along with it
            ws_port = self.http_port + 1 if http_port else config.get("ws_port", self.http_port + 1)
        self.ws_port = int(ws_port)
        self.builder = StagedBuild(project_root, self.output_dir, f"http://localhost:{self.http_port}")
        self.broadcaster = ReloadBroadcaster(self.ws_port)
        self._observer = None
        self._lock = threading.Lock()
        self._pending = False
        self._snapshot: tuple | None = None

    def watched_paths(self) -> list[Path]:
        candidates = [self.site_dir, *(self.project_root / name for name in SOURCE_FOLDERS)]
        return [path for path in candidates if path.is_dir()]

    def snapshot(self) -> tuple | None:
        return source_snapshot(self.watched_paths(), self.project_root)

    def start(self, include_drafts: bool = False) -> None:  # pragma: no cover - integration path
        self.builder.run(include_drafts)
        self._snapshot = self.snapshot()
        threading.Thread(target=self._serve_http, daemon=True).start()
        threading.Thread(target=self.broadcaster.run, daemon=True).start()
        self.watch(include_drafts)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
        self.broadcaster.close()

    def _serve_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type("PreviewHandlerForSite", (PreviewHandler,), {"snippet": reload_snippet(self.ws_port)})
        httpd = ThreadingHTTPServer(("", self.http_port), functools.partial(handler_cls, directory=str(self.output_dir)))
        logger.info("Serving %s at http://localhost:%d", self.output_dir, self.http_port)
        httpd.serve_forever()

    def watch(self, include_drafts: bool) -> None:
        handler = SourceChangeHandler(self, include_drafts)
        observer = Observer()
        for path in self.watched_paths():
            observer.schedule(handler, str(path), recursive=True)
        # folio.yaml
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def rebuild(self, include_drafts: bool) -> bool:
        """Rebuild until the sources stop changing.

        Every call marks the sources dirty. A call that finds another rebuild
        running returns at once; the running one sees the mark and goes
        around again, so a save made mid-build is never lost.

        Returns:
            True if at least one new build was published.
        """
        self._pending = True
        published = False
        while self._pending and self._lock.acquire(blocking=False):
            try:
                while self._pending:
                    self._pending = False
                    # let a burst of events from one save settle
                    time.sleep(self.debounce_seconds)
                    published = self._build_if_changed(include_drafts) or published
            finally:
                self._lock.release()
        return published

    def _build_if_changed(self, include_drafts: bool) -> bool:
        current = self.snapshot()
        if current is not None and current == self._snapshot:
            return False
        self._snapshot = current
        logger.info("Change detected; rebuilding")
        try:
            self.builder.run(include_drafts)
        except BuildError as exc:
            logger.error("Build failed: %s", exc)
            return False
        time.sleep(self.settle_seconds)
        self.broadcaster.notify()
        return True


class SourceChangeHandler(FileSystemEventHandler):
    """Forwards file events outside the build output to DevServer.rebuild."""

    def __init__(self, server: DevServer, include_drafts: bool):
        super().__init__()
        self.server = server
        self.include_drafts = include_drafts

    def is_relevant(self, path: Path) -> bool:
        if IGNORED_PARTS.intersection(path.parts):
            return False
        for generated in (self.server.output_dir, self.server.builder.staging_dir):
            if path == generated or generated in path.parents:
                return False
        return True

    def on_any_event(self, event):
        if event.is_directory or not self.is_relevant(Path(event.src_path)):
            return
        self.server.rebuild(self.include_drafts)
