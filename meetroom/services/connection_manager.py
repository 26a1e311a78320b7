# meetroom/services/connection_manager.py

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from meetroom.models.models import Identity
from meetroom.services.delivery import Delivery, Target

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """
    One live, authenticated socket.

    ``meeting_id`` is the single meeting the connection is subscribed to, or
    None while Unjoined.
    """

    id: str
    identity: Identity
    websocket: Any
    meeting_id: Optional[str] = None

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def user_name(self) -> str:
        return self.identity.email


# ============================================================================
# CONNECTION REGISTRY / MEMBERSHIP INDEX
# ============================================================================

class ConnectionManager:
    """
    Live connections and the in-process membership index.

    Data Structures:
        connections: Maps connection_id -> Connection
        meeting_groups: Maps meeting_id -> Set of connection ids subscribed
                        for fan-out. Example: {"m-1": {"c-1", "c-2"}}
        user_channels: Maps user_id -> Set of connection ids authenticated as
                       that user (the private channel for direct signaling)

    The inverse mapping connection -> meeting is ``Connection.meeting_id``,
    which makes "at most one meeting per connection" structural.

    Only the lifecycle manager calls the mutating methods (register,
    unregister, bind_meeting, unbind_meeting). The message router reads.

    The index is a derived cache: it is not persisted, and a restart drops
    it together with every socket it describes.
    """

    def __init__(self) -> None:
        self.connections: Dict[str, Connection] = {}
        self.meeting_groups: Dict[str, Set[str]] = {}
        self.user_channels: Dict[str, Set[str]] = {}

    # ------------------------------------------------------------------
    # Mutations (lifecycle manager only)
    # ------------------------------------------------------------------

    async def connect(self, websocket: Any, identity: Identity) -> Connection:
        """Accept the socket and subscribe it to its user's private channel."""
        await websocket.accept()
        connection = Connection(id=str(uuid.uuid4()), identity=identity, websocket=websocket)
        self.register(connection)
        return connection

    def register(self, connection: Connection) -> None:
        self.connections[connection.id] = connection
        self.user_channels.setdefault(connection.user_id, set()).add(connection.id)
        logger.info("✓ User %s connected (%s). Total: %d", connection.user_id, connection.id, len(self.connections))

    def unregister(self, connection_id: str) -> None:
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return

        if connection.meeting_id is not None:
            self._discard(self.meeting_groups, connection.meeting_id, connection_id)
            connection.meeting_id = None
        self._discard(self.user_channels, connection.user_id, connection_id)

        logger.info("✗ User %s disconnected (%s). Total: %d", connection.user_id, connection_id, len(self.connections))

    def bind_meeting(self, connection_id: str, meeting_id: str) -> None:
        connection = self.connections[connection_id]
        if connection.meeting_id is not None and connection.meeting_id != meeting_id:
            raise RuntimeError(f"Connection {connection_id} is already bound to {connection.meeting_id}")
        connection.meeting_id = meeting_id
        self.meeting_groups.setdefault(meeting_id, set()).add(connection_id)
        logger.debug("Connection %s subscribed to meeting %s (%d members)",
                     connection_id, meeting_id, len(self.meeting_groups[meeting_id]))

    def unbind_meeting(self, connection_id: str) -> Optional[str]:
        connection = self.connections.get(connection_id)
        if connection is None or connection.meeting_id is None:
            return None
        meeting_id = connection.meeting_id
        connection.meeting_id = None
        self._discard(self.meeting_groups, meeting_id, connection_id)
        logger.debug("Connection %s unsubscribed from meeting %s", connection_id, meeting_id)
        return meeting_id

    @staticmethod
    def _discard(groups: Dict[str, Set[str]], key: str, connection_id: str) -> None:
        members = groups.get(key)
        if members is None:
            return
        members.discard(connection_id)
        # Clean up empty groups
        if not members:
            del groups[key]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def meeting_of(self, connection_id: str) -> Optional[str]:
        connection = self.connections.get(connection_id)
        return connection.meeting_id if connection else None

    def is_subscribed(self, connection_id: str, meeting_id: str) -> bool:
        return connection_id in self.meeting_groups.get(meeting_id, ())

    def meeting_members(self, meeting_id: str) -> Set[str]:
        return set(self.meeting_groups.get(meeting_id, ()))

    def user_connections(self, user_id: str) -> Set[str]:
        return set(self.user_channels.get(user_id, ()))

    def user_in_meeting(self, user_id: str, meeting_id: str, exclude: Optional[str] = None) -> bool:
        """True if any connection of ``user_id`` other than ``exclude`` is subscribed to the meeting."""
        members = self.meeting_groups.get(meeting_id, ())
        return any(cid in members for cid in self.user_channels.get(user_id, ()) if cid != exclude)

    def resolve(self, delivery: Delivery) -> Set[str]:
        """Connection ids a delivery goes to, as of now."""
        if delivery.target == Target.CONNECTION:
            recipients = {delivery.key} if delivery.key in self.connections else set()
        elif delivery.target == Target.MEETING:
            recipients = self.meeting_members(delivery.key)
        else:
            recipients = self.user_connections(delivery.key)
        if delivery.exclude is not None:
            recipients.discard(delivery.exclude)
        return recipients

    def stats(self) -> Dict[str, int]:
        return {
            "connections": len(self.connections),
            "users": len(self.user_channels),
            "active_meeting_groups": len(self.meeting_groups),
        }

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, connection_id: str, event: str, data: dict) -> bool:
        """
        Send one frame to one connection.

        Best effort: a failed send is logged and reported as False. The
        socket's own receive loop notices the broken connection and runs the
        regular disconnect cleanup.
        """
        connection = self.connections.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            logger.warning("Send error to %s (%s): %s", connection_id, event, e)
            return False

    async def deliver(self, deliveries: Iterable[Delivery]) -> None:
        """Execute deliveries in order; each group is resolved when its turn comes."""
        for delivery in deliveries:
            recipients = self.resolve(delivery)
            if not recipients:
                logger.debug("[routing] Skipped %s: %s %s has 0 recipients",
                             delivery.event, delivery.target.value, delivery.key)
                continue
            logger.debug("📨 %s -> %s %s: %d connections",
                         delivery.event, delivery.target.value, delivery.key, len(recipients))
            for connection_id in recipients:
                await self.send(connection_id, delivery.event, delivery.data)

    async def close_all(self, code: int = 1001) -> None:
        """Drain hook: close every live socket."""
        sockets: List[Any] = [c.websocket for c in self.connections.values()]
        for websocket in sockets:
            try:
                await websocket.close(code=code)
            except Exception as e:
                logger.debug("Error closing WebSocket: %s", e)
