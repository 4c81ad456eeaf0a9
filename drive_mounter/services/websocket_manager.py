import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import WebSocket, WebSocketDisconnect

from ..core.events.event_bus import DomainEventBus
from ..core.events.mount_events import MountStatusChangedEvent
from ..core.mount_registry import MountRegistry


class WebSocketManager:
    """Pushes mount status changes to connected UI clients."""

    def __init__(self, registry: MountRegistry, event_bus: DomainEventBus):
        self._registry = registry
        self._event_bus = event_bus
        self._lock = asyncio.Lock()
        self._connections: List[WebSocket] = []

        logging.info("WebSocketManager initialized")

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def subscribe_to_events(self) -> None:
        await self._event_bus.subscribe(MountStatusChangedEvent, self.handle_mount_status_event)
        logging.info("Subscribed to DomainEventBus for mount status updates")

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)

        await self._send_initial_state(websocket)

        logging.info(f"WebSocket client connected. Total connections: {len(self._connections)}")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.remove(websocket)

        logging.info(f"WebSocket client disconnected. Total connections: {len(self._connections)}")

    async def _send_initial_state(self, websocket: WebSocket) -> None:
        try:
            drives = await self._registry.get_all()
            initial_data = {
                "type": "initial_state",
                "data": {
                    "mounts": [drive.snapshot().model_dump(mode="json") for drive in drives],
                    "timestamp": self._get_timestamp(),
                },
            }
            await websocket.send_text(json.dumps(initial_data))
            logging.debug(f"Sent initial state to client: {len(drives)} mount(s)")

        except Exception as e:
            logging.error(f"Error sending initial state: {e}")

    async def handle_mount_status_event(self, event: MountStatusChangedEvent) -> None:
        if not self._connections:
            return

        try:
            message_data = {
                "type": "mount_status",
                "data": event.to_update().model_dump(mode="json"),
            }
            await self._broadcast_message(message_data)

            logging.debug(
                f"Broadcasted mount status: {event.connection_id} "
                f"{event.old_status.value} -> {event.new_status.value}"
            )

        except Exception as e:
            logging.error(f"Error broadcasting mount status: {e}")

    async def _broadcast_message(self, message_data: Dict[str, Any]) -> None:
        if not self._connections:
            return

        message_json = json.dumps(message_data)
        disconnected_clients = []

        for websocket in list(self._connections):
            try:
                await websocket.send_text(message_json)

            except WebSocketDisconnect:
                disconnected_clients.append(websocket)
                logging.debug("Client disconnected during broadcast")

            except Exception as e:
                disconnected_clients.append(websocket)
                logging.warning(f"Error sending to client: {e}")

        for websocket in disconnected_clients:
            self.disconnect(websocket)

    def _get_timestamp(self) -> str:
        return datetime.now().isoformat()
