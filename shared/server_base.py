"""
WebSocket plumbing shared by game servers: per-channel connection
registries with broadcast, and the uvicorn runner.
"""

import logging
from typing import Dict, List

from fastapi import FastAPI, WebSocket


logger = logging.getLogger(__name__)


class ConnectionHub:
    """
    WebSocket connections grouped by channel (one channel per session).
    """

    def __init__(self):
        self.channels: Dict[str, List[WebSocket]] = {}

    async def connect(self, channel: str, ws: WebSocket) -> int:
        """Accept and register a WebSocket connection; returns the channel size."""
        await ws.accept()
        self.channels.setdefault(channel, []).append(ws)
        return len(self.channels[channel])

    def disconnect(self, channel: str, ws: WebSocket) -> int:
        """Remove a WebSocket connection; returns how many are left on the channel."""
        connections = self.channels.get(channel, [])
        if ws in connections:
            connections.remove(ws)
        if not connections:
            self.channels.pop(channel, None)
        return len(connections)

    async def broadcast(self, channel: str, msg: dict):
        """Send a message to every connection on a channel, dropping dead ones."""
        for ws in list(self.channels.get(channel, [])):
            try:
                await ws.send_json(msg)
            except Exception as e:
                logger.debug("Dropping connection on %s: %s", channel, e)
                self.disconnect(channel, ws)


def run_server(app: FastAPI, host: str = "0.0.0.0", port: int = 8000, log_level: str = "info"):
    """Run the FastAPI server."""
    import uvicorn
    uvicorn.run(app, host=host, port=port, log_level=log_level)
