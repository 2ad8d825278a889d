"""
Protocol definitions for Parley
Defines event names and frame structures shared by server and clients
"""

import json
import time
from typing import Dict, Any, Optional
from enum import Enum


class MessageType(Enum):
    """Event names on the wire"""
    # Connection management
    CONNECTED = "connected"
    DISCONNECT = "disconnect"

    # Server / channel membership
    JOIN_SERVER = "join-server"
    SERVER_JOINED = "server-joined"
    USER_LIST = "user-list"
    JOIN_CHANNEL = "join-channel"
    LEAVE_CHANNEL = "leave-channel"

    # Messaging
    SEND_MESSAGE = "send-message"
    NEW_MESSAGE = "new-message"
    GET_MESSAGES = "get-messages"
    MESSAGES_HISTORY = "messages-history"

    # Voice rooms
    JOIN_VOICE = "join-voice"
    LEAVE_VOICE = "leave-voice"
    VOICE_USERS_UPDATED = "voice-users-updated"
    EXISTING_VOICE_USERS = "existing-voice-users"
    USER_JOINED_VOICE = "user-joined-voice"
    USER_LEFT_VOICE = "user-left-voice"

    # WebRTC signaling (relayed verbatim)
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"

    # Media state
    TOGGLE_CAMERA = "toggle-camera"
    TOGGLE_MICROPHONE = "toggle-microphone"
    CAMERA_TOGGLED = "camera-toggled"
    MICROPHONE_TOGGLED = "microphone-toggled"

    # Channel lifecycle
    CREATE_CHANNEL = "create-channel"
    UPDATE_CHANNEL_SETTINGS = "update-channel-settings"
    DELETE_CHANNEL = "delete-channel"
    CHANNEL_ADDED = "channel-added"
    CHANNEL_REMOVED = "channel-removed"
    CHANNEL_SETTINGS_UPDATED = "channel-settings-updated"

    # Errors
    ERROR = "error"
    MESSAGE_ERROR = "message-error"
    VOICE_ERROR = "voice-error"
    PERMISSION_ERROR = "permission-error"


SIGNALING_TYPES = (MessageType.OFFER, MessageType.ANSWER, MessageType.ICE_CANDIDATE)

# toggle request -> broadcast event
MEDIA_TOGGLES = {
    MessageType.TOGGLE_CAMERA: MessageType.CAMERA_TOGGLED,
    MessageType.TOGGLE_MICROPHONE: MessageType.MICROPHONE_TOGGLED,
}


class Protocol:
    """Protocol frame builder and parser"""

    VERSION = "1.0"
    RESERVED_FIELDS = ("version", "type", "timestamp")

    @staticmethod
    def build_message(msg_type: MessageType, **kwargs) -> str:
        """Build a protocol frame"""
        message = {
            "version": Protocol.VERSION,
            "type": msg_type.value,
            "timestamp": time.time(),
            **kwargs
        }
        return json.dumps(message)

    @staticmethod
    def parse_message(data: str) -> Dict[str, Any]:
        """Parse a protocol frame"""
        try:
            message = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON message: {e}")
        if not isinstance(message, dict):
            raise ValueError("Message must be a JSON object")
        if "type" not in message:
            raise ValueError("Message missing type field")
        return message

    @staticmethod
    def message_type(message: Dict[str, Any]) -> MessageType:
        """Resolve the event name of a parsed frame"""
        try:
            return MessageType(message.get("type"))
        except ValueError:
            raise ValueError(f"Unknown message type: {message.get('type')}")

    @staticmethod
    def payload(message: Dict[str, Any]) -> Dict[str, Any]:
        """Event fields of a parsed frame, without the envelope"""
        return {k: v for k, v in message.items() if k not in Protocol.RESERVED_FIELDS}

    @staticmethod
    def error(error_message: str, **kwargs) -> str:
        """Create a protocol-level error frame"""
        return Protocol.build_message(
            MessageType.ERROR,
            error=error_message,
            **kwargs
        )

    # Client -> server

    @staticmethod
    def join_server(username: str, server_id: str) -> str:
        """Create a join-server request"""
        return Protocol.build_message(
            MessageType.JOIN_SERVER,
            username=username,
            server_id=server_id
        )

    @staticmethod
    def join_channel(channel_id: str) -> str:
        """Create a join-channel request"""
        return Protocol.build_message(MessageType.JOIN_CHANNEL, channel_id=channel_id)

    @staticmethod
    def leave_channel(channel_id: str) -> str:
        """Create a leave-channel request"""
        return Protocol.build_message(MessageType.LEAVE_CHANNEL, channel_id=channel_id)

    @staticmethod
    def send_message(channel_id: str, text: str) -> str:
        """Create a send-message request"""
        return Protocol.build_message(
            MessageType.SEND_MESSAGE,
            channel_id=channel_id,
            text=text
        )

    @staticmethod
    def get_messages(channel_id: str) -> str:
        """Request the stored history of a channel"""
        return Protocol.build_message(MessageType.GET_MESSAGES, channel_id=channel_id)

    @staticmethod
    def join_voice(channel_id: str) -> str:
        return Protocol.build_message(MessageType.JOIN_VOICE, channel_id=channel_id)

    @staticmethod
    def leave_voice(channel_id: Optional[str] = None) -> str:
        return Protocol.build_message(MessageType.LEAVE_VOICE, channel_id=channel_id)

    @staticmethod
    def signal(msg_type: MessageType, target: str, payload: Any) -> str:
        """Create an offer/answer/ice-candidate frame addressed to a connection"""
        if msg_type not in SIGNALING_TYPES:
            raise ValueError(f"{msg_type.value} is not a signaling message")
        return Protocol.build_message(msg_type, target=target, payload=payload)

    @staticmethod
    def toggle(msg_type: MessageType, enabled: bool) -> str:
        """Create a toggle-camera/toggle-microphone frame"""
        if msg_type not in MEDIA_TOGGLES:
            raise ValueError(f"{msg_type.value} is not a media toggle")
        return Protocol.build_message(msg_type, enabled=enabled)

    @staticmethod
    def create_channel(name: str, channel_type: str, settings: Optional[Dict[str, Any]] = None) -> str:
        return Protocol.build_message(
            MessageType.CREATE_CHANNEL,
            name=name,
            channel_type=channel_type,
            settings=settings or {}
        )

    @staticmethod
    def update_channel_settings(channel_id: str, settings: Dict[str, Any]) -> str:
        return Protocol.build_message(
            MessageType.UPDATE_CHANNEL_SETTINGS,
            channel_id=channel_id,
            settings=settings
        )

    @staticmethod
    def delete_channel(channel_id: str) -> str:
        return Protocol.build_message(MessageType.DELETE_CHANNEL, channel_id=channel_id)

    @staticmethod
    def disconnect() -> str:
        return Protocol.build_message(MessageType.DISCONNECT)

