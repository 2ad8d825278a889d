"""
Broadcast Dispatcher for Parley
Fans events out to every occupant of a scope
"""

import logging
from typing import Any, Dict, Optional

from errors import ParleyError
from models import Scope
from presence_registry import PresenceRegistry
from protocol import Protocol, MessageType
from room_index import RoomMembershipIndex


logger = logging.getLogger('Parley-Broadcast')


class BroadcastDispatcher:
    """
    Read-only user of the registry and index.

    Frames are pushed onto each connection's outbound queue without awaiting,
    so every occupant of a scope sees events in dispatch order and a slow
    socket cannot hold up the others.
    """

    def __init__(self, registry: PresenceRegistry, rooms: RoomMembershipIndex):
        self.registry = registry
        self.rooms = rooms

    def _push(self, conn_id: str, frame: str) -> bool:
        record = self.registry.get(conn_id)
        if record is None or record.sink is None:
            return False
        record.sink.push(frame)
        return True

    def broadcast(self, scope: Scope, event: MessageType, payload: Dict[str, Any],
                  exclude: Optional[str] = None) -> int:
        """
        Send an event to every occupant of a scope

        Args:
            scope: Target scope
            event: Event name
            payload: Event fields
            exclude: Connection to skip (usually the actor)

        Returns:
            Number of connections the frame was queued for
        """
        frame = Protocol.build_message(event, **payload)
        delivered = 0
        for conn_id in self.rooms.occupants(scope):
            if conn_id == exclude:
                continue
            if self._push(conn_id, frame):
                delivered += 1
        logger.debug(f"{event.value} -> {scope} ({delivered} recipients)")
        return delivered

    def send(self, conn_id: str, event: MessageType, payload: Dict[str, Any]) -> bool:
        """Send an event to a single connection"""
        return self._push(conn_id, Protocol.build_message(event, **payload))

    def send_error(self, conn_id: str, error: ParleyError, event: Optional[MessageType] = None,
                   scope_field: str = "channel_id") -> bool:
        """
        Report a rejection to the initiating connection only

        Args:
            conn_id: Initiating connection
            error: The rejection
            event: Error event of the operation, defaults to the error's own
            scope_field: Payload key carrying the scope id
        """
        payload = error.to_payload()
        if error.scope_id is not None:
            payload[scope_field] = error.scope_id
        return self.send(conn_id, event or MessageType(error.error_event), payload)
