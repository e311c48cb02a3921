"""
WebSocket manager for real-time queue updates
"""

import json
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db
from app.services.errors import StoreError
from app.services.events import PartyChange
from app.services.projection import QueueProjection, party_to_dict
from app.services.repositories import PartyRepo
from app.services.waitlist_service import load_projection

logger = logging.getLogger(__name__)


class WebSocketManager:
    """Manages WebSocket connections and one projection per restaurant scope.

    A connection with a party id is a guest connection and only ever
    receives that party's status plus aggregate counts.
    """

    def __init__(self):
        # restaurant slug -> list of (websocket, party_id or None for host)
        self.active_connections: Dict[str, List[Tuple[WebSocket, Optional[str]]]] = {}
        # restaurant slug -> projection, alive while the scope has connections
        self.projections: Dict[str, QueueProjection] = {}

    async def connect(
        self,
        websocket: WebSocket,
        slug: str,
        load: Callable[[], QueueProjection],
        party_id: Optional[str] = None
    ) -> QueueProjection:
        """Accept WebSocket connection and add it to the restaurant scope.

        A scope that already has connections keeps its projection, which
        has been receiving every change. Otherwise ``load`` does a full read
        after the accept. Nothing awaits between reading the projection and
        registering the connection, so no published change can fall between.
        """
        await websocket.accept()

        if slug not in self.projections:
            self.projections[slug] = load()
        self.active_connections.setdefault(slug, []).append((websocket, party_id))
        logger.info(f"WebSocket connected to {slug}. Total connections: {len(self.active_connections[slug])}")
        return self.projections[slug]

    def disconnect(self, websocket: WebSocket, slug: str):
        """Remove WebSocket connection; drop the scope when it empties"""
        if slug not in self.active_connections:
            return

        remaining = [item for item in self.active_connections[slug] if item[0] is not websocket]
        self.active_connections[slug] = remaining
        logger.info(f"WebSocket disconnected from {slug}. Remaining connections: {len(remaining)}")

        if not remaining:
            del self.active_connections[slug]
            self.projections.pop(slug, None)

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send message to specific WebSocket"""
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.error(f"Error sending personal message: {e}")

    def snapshot_message(self, slug: str, party_id: Optional[str] = None) -> dict:
        projection = self.projections[slug].set_clock(datetime.utcnow())
        message = {
            "type": "snapshot",
            "restaurant_slug": slug,
            "connection_count": self.get_connection_count(slug),
            "timestamp": datetime.utcnow().isoformat(),
        }
        if party_id is None:
            message["queue"] = projection.host_view()
        else:
            message["status"] = projection.guest_status(party_id)
        return message

    async def publish_change(self, change: PartyChange):
        """Apply a committed change to the scope projection and push the result"""
        slug = change.restaurant_slug
        if slug not in self.active_connections:
            logger.debug(f"No active connections for {slug}")
            return

        projection = self.projections[slug]
        projection.apply_change(change.op, change.party)
        projection.set_clock(datetime.utcnow())

        timestamp = change.timestamp.isoformat()
        host_message = {
            "type": "party_change",
            "op": change.op,
            "party": party_to_dict(change.party),
            "queue": projection.host_view(),
            "timestamp": timestamp,
        }

        # Create list copy to avoid modification during iteration
        connections = list(self.active_connections[slug])

        disconnected = []
        for websocket, party_id in connections:
            if party_id is None:
                message = host_message
            elif party_id == change.party.id:
                message = {
                    "type": "party_change",
                    "op": change.op,
                    "status": projection.guest_status(party_id),
                    "timestamp": timestamp,
                }
            else:
                message = {
                    "type": "queue_update",
                    "status": projection.guest_status(party_id),
                    "timestamp": timestamp,
                }
            try:
                await websocket.send_text(json.dumps(message))
            except Exception as e:
                logger.error(f"Error broadcasting to websocket: {e}")
                disconnected.append(websocket)

        # Clean up disconnected websockets
        for websocket in disconnected:
            self.disconnect(websocket, slug)

    def get_connection_count(self, slug: str) -> int:
        """Get number of active connections for a restaurant"""
        return len(self.active_connections.get(slug, []))

    def get_all_connection_counts(self) -> Dict[str, int]:
        """Get connection counts for all restaurants"""
        return {
            slug: len(connections)
            for slug, connections in self.active_connections.items()
        }

# Global WebSocket manager instance
websocket_manager = WebSocketManager()

# Router for WebSocket endpoints
router = APIRouter()

async def _serve(websocket: WebSocket):
    """Keep connection alive and answer heartbeats until the client leaves"""
    while True:
        try:
            data = await websocket.receive_text()

            try:
                client_message = json.loads(data)

                if client_message.get("type") == "ping":
                    pong_message = {
                        "type": "pong",
                        "timestamp": client_message.get("timestamp")
                    }
                    await websocket_manager.send_personal_message(pong_message, websocket)

            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from WebSocket: {data}")

        except WebSocketDisconnect:
            break
        except Exception as e:
            logger.error(f"Error in WebSocket loop: {e}")
            break

async def _subscribe(
    websocket: WebSocket,
    slug: str,
    db: Session,
    party_id: Optional[str] = None
):
    try:
        await websocket_manager.connect(
            websocket, slug, lambda: load_projection(db, slug), party_id=party_id
        )
    except StoreError as e:
        await websocket.close(code=1011, reason=e.message)
        return

    try:
        await websocket_manager.send_personal_message(
            websocket_manager.snapshot_message(slug, party_id), websocket
        )
        await _serve(websocket)
    finally:
        websocket_manager.disconnect(websocket, slug)

@router.websocket("/restaurants/{slug}")
async def host_websocket(
    websocket: WebSocket,
    slug: str,
    token: str = "",
    db: Session = Depends(get_db)
):
    """Host scope: full queue projection for a restaurant"""
    if token != settings.HOST_TOKEN:
        await websocket.close(code=4001, reason="Invalid host token")
        return

    await _subscribe(websocket, slug, db)

@router.websocket("/restaurants/{slug}/parties/{party_id}")
async def guest_websocket(
    websocket: WebSocket,
    slug: str,
    party_id: str,
    db: Session = Depends(get_db)
):
    """Guest scope: one party's status and position"""
    try:
        party = PartyRepo.get(db, slug, party_id)
    except StoreError as e:
        await websocket.close(code=1011, reason=e.message)
        return

    if party is None:
        await websocket.close(code=4004, reason="Party not found")
        return

    await _subscribe(websocket, slug, db, party_id=party_id)

@router.get("/stats")
async def websocket_stats():
    """Get WebSocket connection statistics (for debugging)"""
    return {
        "total_restaurants_with_connections": len(websocket_manager.active_connections),
        "connection_counts": websocket_manager.get_all_connection_counts(),
        "total_connections": sum(websocket_manager.get_all_connection_counts().values())
    }
