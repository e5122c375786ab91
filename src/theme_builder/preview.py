"""Live preview: a reverse proxy in front of the dev site plus reload events."""

from __future__ import annotations

import asyncio
import socket
from typing import AsyncIterator, Optional, Set

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response, StreamingResponse
from loguru import logger

from .config import ConfigProvider, ThemeConfig
from .models import BuildError

EVENTS_PATH = "/__preview/events"
CLIENT_PATH = "/__preview/client.js"
CLIENT_SCRIPT = f"""(function () {{
\tvar source = new EventSource('{EVENTS_PATH}');
\tsource.addEventListener('reload', function () {{
\t\twindow.location.reload();
\t}});
}})();
"""
CLIENT_TAG = f'<script src="{CLIENT_PATH}" async></script>'

_HOP_BY_HOP = {
    "connection",
    "content-encoding",
    "content-length",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


class PreviewBindError(BuildError):
    """Raised when the preview server cannot listen on its port."""


class ReloadHub:
    """Fan-out of reload events to connected browsers."""

    def __init__(self) -> None:
        self._clients: Set[asyncio.Queue[str]] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def subscribe(self) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        self._clients.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[str]) -> None:
        self._clients.discard(queue)

    def broadcast(self, event: str = "reload") -> int:
        for queue in self._clients:
            queue.put_nowait(event)
        return len(self._clients)


def upstream_url(proxy_url: str) -> str:
    url = proxy_url.strip().rstrip("/")
    if "://" not in url:
        url = f"http://{url}"
    return url


def inject_client(html: str) -> str:
    marker = html.lower().rfind("</body>")
    if marker == -1:
        return html + CLIENT_TAG
    return html[:marker] + CLIENT_TAG + html[marker:]


async def _event_stream(hub: ReloadHub) -> AsyncIterator[str]:
    queue = hub.subscribe()
    try:
        yield ": connected\n\n"
        while True:
            event = await queue.get()
            yield f"event: {event}\ndata: {event}\n\n"
    finally:
        hub.unsubscribe(queue)


def create_preview_app(hub: ReloadHub, client: httpx.AsyncClient) -> FastAPI:
    """Build the proxy app; ``client`` must have the upstream as base URL."""

    app = FastAPI(title="Theme preview", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(CLIENT_PATH)
    async def client_script() -> Response:
        return Response(CLIENT_SCRIPT, media_type="application/javascript")

    @app.get(EVENTS_PATH)
    async def events() -> StreamingResponse:
        return StreamingResponse(
            _event_stream(hub),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    @app.api_route(
        "/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    )
    async def proxy(path: str, request: Request) -> Response:
        headers = {
            key: value
            for key, value in request.headers.items()
            if key.lower() not in _HOP_BY_HOP and key.lower() != "host"
        }
        try:
            upstream = await client.request(
                request.method,
                "/" + path,
                params=list(request.query_params.multi_items()),
                headers=headers,
                content=await request.body(),
            )
        except httpx.HTTPError as exc:
            logger.warning("Preview upstream {} unreachable: {}", client.base_url, exc)
            return Response(
                f"Upstream {client.base_url} is unreachable\n",
                status_code=502,
                media_type="text/plain",
            )
        body = upstream.content
        content_type = upstream.headers.get("content-type", "")
        if content_type.startswith("text/html"):
            body = inject_client(upstream.text).encode(upstream.encoding or "utf-8")
        response_headers = {
            key: value
            for key, value in upstream.headers.items()
            if key.lower() not in _HOP_BY_HOP
        }
        return Response(content=body, status_code=upstream.status_code, headers=response_headers)

    return app


class PreviewService:
    """Owns the preview server and decides whether reloads are broadcast.

    The enabled flag is re-read from config on every :meth:`reload`, so
    turning live reload off mid-session pauses the service instead of
    stopping it.
    """

    def __init__(
        self,
        provider: ConfigProvider,
        hub: Optional[ReloadHub] = None,
        host: str = "127.0.0.1",
    ) -> None:
        self.provider = provider
        self.hub = hub or ReloadHub()
        self.host = host
        self.paused = False
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task[None]] = None
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def running(self) -> bool:
        return self._server is not None

    def _bind(self, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, port))
        except OSError as exc:
            sock.close()
            raise PreviewBindError(f"Cannot listen on {self.host}:{port}: {exc}") from exc
        return sock

    async def start(self, config: Optional[ThemeConfig] = None) -> None:
        config = config or self.provider.load()
        settings = config.live_reload
        if not settings.enabled:
            logger.debug("Live reload disabled; preview server not started")
            return
        if self.running:
            return

        sock = self._bind(settings.port)
        target = upstream_url(settings.proxy_url)
        self._client = httpx.AsyncClient(base_url=target, follow_redirects=False)
        app = create_preview_app(self.hub, self._client)
        self._server = uvicorn.Server(uvicorn.Config(app, log_level="warning", lifespan="off"))
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))
        logger.info("Live preview on http://{}:{} proxying {}", self.host, settings.port, target)

    def pause(self) -> None:
        if not self.paused:
            logger.debug("Live preview paused")
        self.paused = True

    def resume(self) -> None:
        if self.paused:
            logger.debug("Live preview resumed")
        self.paused = False

    def reload(self) -> bool:
        """Broadcast a reload if live reload is enabled; otherwise pause.

        Returns whether a broadcast was issued.
        """

        config = self.provider.load()
        if not config.live_reload.enabled:
            self.pause()
            return False
        if self.paused:
            self.resume()
        notified = self.hub.broadcast("reload")
        logger.info("Reloaded {} preview client(s)", notified)
        return True

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
            self._server.force_exit = True
        if self._serve_task is not None:
            await self._serve_task
        if self._client is not None:
            await self._client.aclose()
        self._server = None
        self._serve_task = None
        self._client = None


__all__ = [
    "PreviewBindError",
    "PreviewService",
    "ReloadHub",
    "create_preview_app",
    "inject_client",
    "upstream_url",
]
