"""
Signaling Relay for Parley
Forwards WebRTC offer/answer/ICE frames between two connections.
The server never looks inside the payload.
"""

from typing import Any

from broadcast import BroadcastDispatcher
from errors import TransportDropped
from models import Scope
from protocol import MessageType, SIGNALING_TYPES, MEDIA_TOGGLES


class SignalingRelay:
    """Point-to-point relay for signaling, scope broadcast for media toggles"""

    def __init__(self, dispatcher: BroadcastDispatcher):
        self.dispatcher = dispatcher

    def relay(self, event: MessageType, sender_id: str, target_id: str, payload: Any):
        """
        Forward a signaling frame to exactly one connection

        Args:
            event: offer, answer or ice-candidate
            sender_id: Originating connection
            target_id: Addressed connection
            payload: Opaque session description / candidate

        Raises:
            TransportDropped if the target is not a live connection. The
            caller logs it; the sender is not told.
        """
        if event not in SIGNALING_TYPES:
            raise ValueError(f"{event.value} is not a signaling message")

        if not self.dispatcher.send(target_id, event, {"sender": sender_id, "payload": payload}):
            raise TransportDropped(f"Target {target_id} not connected", target_id)

    def broadcast_toggle(self, event: MessageType, sender_id: str, voice_id: str, enabled: bool) -> int:
        """Tell the other occupants of the sender's voice room about a camera/mic change"""
        if event not in MEDIA_TOGGLES.values():
            raise ValueError(f"{event.value} is not a media toggle event")
        return self.dispatcher.broadcast(
            Scope.voice(voice_id),
            event,
            {"conn_id": sender_id, "enabled": enabled},
            exclude=sender_id
        )
