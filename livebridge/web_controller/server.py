"""
FastAPI remote editor for a live script instance.

Exposes the editor widget over HTTP so the script can be edited from a
browser or with curl while the host loop runs.
"""

import asyncio
import logging
import queue
import threading
from datetime import datetime
from typing import List, Optional, Tuple

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from livebridge.errors import UiStateError
from livebridge.ui.adapter import EDITOR_SCHEMA, EditorWidget, read
from livebridge.ui.widgets import ControlState, dump_schema, dump_states

logger = logging.getLogger("livebridge.web_controller")


class ScriptRequest(BaseModel):
    source: str


class CommandRequest(BaseModel):
    command: str


class WidgetRequest(BaseModel):
    states: List[ControlState]


class RemoteController:
    """
    Remote editor server for one script instance.

    Requests arrive on the server thread; they only queue actions. The host
    loop applies them on its own thread, between ticks, so the instance is
    never touched concurrently.

    Usage:
        controller = RemoteController(EditorWidget(instance), port=8765)
        controller.start()

        # Per frame, on the host thread:
        controller.apply_pending()
        instance.tick(world)
        controller.publish()

        controller.stop()
    """

    def __init__(self, widget: EditorWidget, host: str = "127.0.0.1", port: int = 8765):
        self.host = host
        self.port = port

        self._widget = widget
        self._actions: "queue.Queue[Tuple[str, object]]" = queue.Queue()
        self._lock = threading.Lock()
        self._states = dump_states(widget.states)
        self._response = widget.instance.response_text
        self._tick = widget.instance.tick_count

        self._app = FastAPI(title="livebridge remote editor")
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self._setup_routes()

    @property
    def app(self) -> FastAPI:
        return self._app

    @property
    def pending(self) -> int:
        return self._actions.qsize()

    def _setup_routes(self):
        """Configure FastAPI routes."""

        @self._app.get("/api/health")
        async def health():
            """Health check endpoint."""
            with self._lock:
                tick = self._tick
            return {"status": "ok", "tick": tick, "pending": self.pending}

        @self._app.get("/api/widget")
        async def get_widget():
            """Widget schema and the latest published state vector."""
            with self._lock:
                states = list(self._states)
            return {"schema": dump_schema(EDITOR_SCHEMA), "states": states}

        @self._app.post("/api/widget", status_code=202)
        async def post_widget(request: WidgetRequest):
            """Report a changed state vector (a UI update message)."""
            try:
                read(request.states)
            except UiStateError as e:
                raise HTTPException(status_code=422, detail=str(e))
            self._actions.put(('widget', request.states))
            return {"queued": True}

        @self._app.post("/api/script", status_code=202)
        async def post_script(request: ScriptRequest):
            """Propose new script source."""
            self._actions.put(('script', request.source))
            return {"queued": True}

        @self._app.post("/api/command", status_code=202)
        async def post_command(request: CommandRequest):
            """Queue a one-shot command."""
            self._actions.put(('command', request.command))
            return {"queued": True}

        @self._app.get("/api/response")
        async def get_response():
            """Latest response text."""
            with self._lock:
                return {
                    "text": self._response,
                    "tick": self._tick,
                    "timestamp": datetime.now().isoformat(),
                }

    # =========================================================================
    # Host thread
    # =========================================================================

    def apply_pending(self) -> int:
        """Apply queued requests to the instance. Call from the host thread."""
        instance = self._widget.instance
        applied = 0
        while True:
            try:
                action, payload = self._actions.get_nowait()
            except queue.Empty:
                break

            if action == 'widget':
                self._widget.update(payload)
            elif action == 'script':
                instance.propose(payload)
            elif action == 'command':
                instance.queue_command(payload)
            else:
                logger.warning(f"Unknown remote action: {action}")
                continue
            applied += 1

        if applied:
            logger.debug(f"Applied {applied} remote action(s)")
            self.publish()
        return applied

    def publish(self):
        """Snapshot widget state and response text for the HTTP side."""
        states = dump_states(self._widget.refresh())
        instance = self._widget.instance
        with self._lock:
            self._states = states
            self._response = instance.response_text
            self._tick = instance.tick_count

    # =========================================================================
    # Server lifecycle
    # =========================================================================

    def start(self):
        """Start the server in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning("Remote editor already running")
            return

        def run_server():
            self._loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self._loop)

            config = uvicorn.Config(
                self._app,
                host=self.host,
                port=self.port,
                log_level="warning",
                access_log=False,
            )
            self._server = uvicorn.Server(config)

            logger.info(f"Starting remote editor at http://{self.host}:{self.port}")
            self._loop.run_until_complete(self._server.serve())

        self._thread = threading.Thread(target=run_server, daemon=True)
        self._thread.start()

    def stop(self):
        """Stop the server."""
        if self._server:
            self._server.should_exit = True
        if self._thread:
            self._thread.join(timeout=2.0)
        logger.info("Remote editor stopped")
