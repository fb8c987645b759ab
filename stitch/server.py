"""Development session for Stitch.

Serves the output directory with live reload:
- Injects a reload script into HTML responses.
- Rejects directory listings and missing paths with a 404 (serving 404.html when present).
- Pushes reload notifications to connected browsers over a websocket.
- Watches the sources and hands changed paths to the rebuild scheduler.

Key classes:
- DevSession: Owns the preview server, the reload channel and the watcher.
- PortUnavailable: Raised when the preview or websocket port is taken.
- _ReloadHandler: HTTP request handler that injects reload script and enforces 404s.
- _ChangeHandler: File system event handler feeding the scheduler.
"""

from __future__ import annotations

import asyncio
import errno
import functools
import json
import socket
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from . import globs
from .router import ReloadScope


class PortUnavailable(Exception):
    """The dev session could not bind its port.

    Attributes:
        port: The port that was requested.
    """

    def __init__(self, port: int, reason: str = "address already in use"):
        self.port = port
        self.reason = reason
        super().__init__(f"Port {port} unavailable: {reason}")


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects live reload script into HTML pages.

    Attributes:
        reload_script: JavaScript code for WebSocket connection to trigger reloads.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload') location.reload();
        if (data.type === 'stream') {{
          document.querySelectorAll('link[rel="stylesheet"]').forEach((link) => {{
            const url = new URL(link.href);
            url.searchParams.set('stitch', Date.now());
            link.href = url.toString();
          }});
        }}
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=8001)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        # Never expose directory listings; treat as missing content.
        return self._serve_404()

    def _inject(self, content: str) -> bytes:
        if "</body>" in content:
            content = content.replace("</body>", f"{self.reload_script}</body>")
        else:
            content += self.reload_script
        return content.encode("utf-8")

    def _send_html(self, status: int, encoded: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with injected reload script and a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, self._inject(error_page.read_text(encoding="utf-8")))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            index_path = path_obj / "index.html"
            if not index_path.exists():
                return self._serve_404()
            path_obj = index_path
        elif not path_obj.exists():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(200, self._inject(path_obj.read_text(encoding="utf-8")))
            return None
        return super().send_head()


class DevSession:
    """Preview server plus reload channel for one build output.

    Attributes:
        output_dir: Directory being served.
        http_port: Port for the HTTP server.
        ws_port: Port for WebSocket connections (``http_port + 1``).
        _observer: File system observer, once watching.
        _ws_clients: Set of connected WebSocket clients.
        _loop: Event loop running the WebSocket server.
    """

    def __init__(self):
        self.output_dir: Path | None = None
        self.http_port: int | None = None
        self.ws_port: int | None = None
        self.notifications: list[ReloadScope] = []
        self._started = False
        self._httpd: ThreadingHTTPServer | None = None
        self._ws_socket: socket.socket | None = None
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()

    @property
    def started(self) -> bool:
        return self._started

    def start(self, output_dir: Path, port: int) -> None:
        """Start serving ``output_dir`` on ``port`` (websocket on ``port + 1``).

        Both sockets are bound before this returns. Calling start again
        after a successful start does nothing.

        Raises:
            PortUnavailable: If either port cannot be bound.
        """
        if self._started:
            return
        self.output_dir = output_dir
        self.http_port = port
        self.ws_port = port + 1
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)},
        )
        handler = functools.partial(handler_cls, directory=str(output_dir))
        try:
            self._httpd = ThreadingHTTPServer(("", port), handler)
        except OSError as exc:
            raise PortUnavailable(port, _bind_reason(exc)) from exc
        try:
            self._ws_socket = _bind_socket(self.ws_port)
        except OSError as exc:
            self._httpd.server_close()
            self._httpd = None
            raise PortUnavailable(self.ws_port, _bind_reason(exc)) from exc
        self._started = True
        threading.Thread(target=self._httpd.serve_forever, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        print(f"Serving {output_dir} at http://localhost:{port}")

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._httpd:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None
        self._loop.call_soon_threadsafe(self._loop.stop)

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            print(f"WebSocket server failed to start (port {self.ws_port}): {exc}")
            return

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, sock=self._ws_socket):
            await asyncio.Future()  # Run forever

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def notify(self, scope: ReloadScope) -> None:
        """Tell connected browsers to reload.

        Args:
            scope: FULL refreshes the page; STREAM re-fetches stylesheets.
        """
        self.notifications.append(scope)
        message_type = "stream" if scope == ReloadScope.STREAM else "reload"
        message = json.dumps({"type": message_type})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in self._ws_clients:
            try:
                await ws.send(message)
            except Exception:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    def watch(self, project_root: Path, submit, patterns: tuple[str, ...] = ()) -> None:
        """Start watching sources, passing changed file paths to ``submit``.

        Args:
            project_root: Project root.
            submit: Thread-safe callable receiving each changed path.
            patterns: Extra glob patterns (e.g. asset lists) whose base
                directories must be watched too.
        """
        handler = _ChangeHandler(submit, ignored=[p for p in (self.output_dir,) if p])
        observer = Observer()
        scheduled: list[Path] = []
        for folder in self._watch_roots(project_root, patterns):
            if any(_is_within(folder, done) for done in scheduled):
                continue
            observer.schedule(handler, str(folder), recursive=True)
            scheduled.append(folder)
        observer.start()
        self._observer = observer

    @staticmethod
    def _watch_roots(project_root: Path, patterns: tuple[str, ...]) -> list[Path]:
        roots = [project_root / "src"]
        for pattern in patterns:
            if pattern.startswith("!"):
                continue
            for option in globs.expand_braces(pattern):
                base = globs.static_base(option)
                roots.append(project_root / base if base else project_root)
        return sorted({r for r in roots if r.is_dir()}, key=lambda p: (len(p.parts), str(p)))


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, submit, ignored=()):
        super().__init__()
        self.submit = submit
        self.ignored = list(ignored)

    def on_any_event(self, event):
        if event.is_directory:
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)
        for raw in paths:
            path = Path(raw)
            if "node_modules" in path.parts:
                continue
            if any(_is_within(path, ignored) for ignored in self.ignored):
                continue
            self.submit(path)


def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.relative_to(parent)
    except ValueError:
        return False
    return True


def _bind_socket(port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("0.0.0.0", port))
        sock.listen()
    except OSError:
        sock.close()
        raise
    sock.setblocking(False)
    return sock


def _bind_reason(exc: OSError) -> str:
    if exc.errno == errno.EADDRINUSE:
        return "address already in use"
    return exc.strerror or str(exc)
