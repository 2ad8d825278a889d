"""
Data Models for Parley

Represents connection state, scopes and channel metadata as plain
dataclasses so the core components can be tested without any transport.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any
from enum import Enum


class ScopeKind(Enum):
    """Kinds of broadcast/membership grouping"""
    SERVER = "server"
    CHANNEL = "channel"
    VOICE = "voice"


@dataclass(frozen=True)
class Scope:
    """A server, text channel or voice room that connections can occupy"""
    kind: ScopeKind
    scope_id: str

    @classmethod
    def server(cls, server_id: str) -> 'Scope':
        return cls(ScopeKind.SERVER, server_id)

    @classmethod
    def channel(cls, channel_id: str) -> 'Scope':
        return cls(ScopeKind.CHANNEL, channel_id)

    @classmethod
    def voice(cls, channel_id: str) -> 'Scope':
        return cls(ScopeKind.VOICE, channel_id)

    def __str__(self):
        return f"{self.kind.value}:{self.scope_id}"


class ChannelType(Enum):
    """Type of channel"""
    TEXT = "text"
    ANNOUNCEMENT = "announcement"
    VOICE = "voice"

    @property
    def is_text(self) -> bool:
        return self in (ChannelType.TEXT, ChannelType.ANNOUNCEMENT)


@dataclass
class ConnectionRecord:
    """
    Identity and current scopes of one live connection.

    The scope fields are written only by the lifecycle manager, in the same
    step that updates the room index.
    """
    conn_id: str
    sink: Any = None  # outbound frame queue, see server.Connection
    username: Optional[str] = None
    server_id: Optional[str] = None
    channel_id: Optional[str] = None
    voice_id: Optional[str] = None

    @property
    def identified(self) -> bool:
        """True once a join-server event has set the identity"""
        return self.username is not None and self.server_id is not None

    def scope_field(self, kind: ScopeKind) -> Optional[str]:
        """Current scope id of the given kind"""
        if kind == ScopeKind.SERVER:
            return self.server_id
        if kind == ScopeKind.CHANNEL:
            return self.channel_id
        return self.voice_id

    def describe(self) -> Dict[str, str]:
        """Public view sent to other clients"""
        return {"conn_id": self.conn_id, "username": self.username}


@dataclass
class ChannelPolicy:
    """Channel metadata relevant to the core"""
    channel_id: str
    server_id: str
    name: str
    channel_type: ChannelType = ChannelType.TEXT
    admin_only: bool = False
    slow_mode_seconds: int = 0
    user_limit: int = 0  # voice only, 0 = unlimited

    SETTINGS_KEYS = ("admin_only", "slow_mode_seconds", "user_limit")

    @classmethod
    def create(cls, channel_id: str, server_id: str, name: str,
               channel_type: ChannelType, settings: Optional[Dict[str, Any]] = None) -> 'ChannelPolicy':
        """Build a channel with type defaults, overridden by settings"""
        policy = cls(
            channel_id=channel_id,
            server_id=server_id,
            name=name,
            channel_type=channel_type,
            admin_only=channel_type == ChannelType.ANNOUNCEMENT
        )
        policy.apply_settings(settings or {})
        return policy

    def apply_settings(self, settings: Dict[str, Any]):
        """Merge a (validated) settings fragment into this policy"""
        for key in self.SETTINGS_KEYS:
            if key in settings:
                setattr(self, key, settings[key])

    def settings(self) -> Dict[str, Any]:
        """Settings fragment relevant to the channel type"""
        if self.channel_type == ChannelType.VOICE:
            return {"user_limit": self.user_limit}
        return {
            "admin_only": self.admin_only,
            "slow_mode_seconds": self.slow_mode_seconds
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.channel_id,
            "server_id": self.server_id,
            "name": self.name,
            "type": self.channel_type.value,
            "settings": self.settings()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChannelPolicy':
        return cls.create(
            channel_id=data["id"],
            server_id=data["server_id"],
            name=data.get("name", data["id"]),
            channel_type=ChannelType(data.get("type", "text")),
            settings=data.get("settings", {})
        )


@dataclass
class ServerInfo:
    """A logical server as known to the directory"""
    server_id: str
    name: str
    owner: str
    admins: set = field(default_factory=set)

    def is_owner(self, username: str) -> bool:
        return username == self.owner

    def is_admin(self, username: str) -> bool:
        return username in self.admins


@dataclass
class MessageRecord:
    """A chat message as accepted by the message store"""
    message_id: int
    channel_id: str
    username: str
    text: str
    timestamp: float
    is_admin: bool = False
    is_owner: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
