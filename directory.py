"""
External collaborators of the Parley core

The core only talks to the authorization oracle, the message store and the
channel metadata store through the interfaces below. ServerDirectory is the
in-memory implementation used by the bundled server, persisting servers and
channels to a JSON file.
"""

import itertools
import json
import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict, List, Optional, Any

from errors import NotFound, StoreError
from models import ChannelPolicy, ChannelType, MessageRecord, ServerInfo


logger = logging.getLogger('Parley-Directory')


class AuthorizationOracle(ABC):
    """Answers owner/admin questions about a server"""

    @abstractmethod
    def is_owner(self, server_id: str, username: str) -> bool:
        ...

    @abstractmethod
    def is_admin(self, server_id: str, username: str) -> bool:
        ...

    def is_owner_or_admin(self, server_id: str, username: str) -> bool:
        return self.is_owner(server_id, username) or self.is_admin(server_id, username)


class MessageStore(ABC):
    """Durable message log; a message is broadcast only after persist succeeds"""

    @abstractmethod
    async def persist(self, channel_id: str, username: str, text: str,
                      is_admin: bool = False, is_owner: bool = False) -> MessageRecord:
        """Store a message, raising StoreError on failure"""

    @abstractmethod
    async def history(self, channel_id: str) -> List[MessageRecord]:
        """Stored messages of a channel, oldest first"""


class ChannelMetadataStore(ABC):
    """Authoritative copy of servers and channel policies"""

    @abstractmethod
    def has_server(self, server_id: str) -> bool:
        ...

    @abstractmethod
    def get_channel_policy(self, channel_id: str) -> ChannelPolicy:
        """Raises NotFound for unknown channels"""

    @abstractmethod
    def list_channels(self, server_id: str) -> List[ChannelPolicy]:
        ...

    @abstractmethod
    def create_channel(self, server_id: str, name: str, channel_type: ChannelType,
                       settings: Optional[Dict[str, Any]] = None) -> ChannelPolicy:
        ...

    @abstractmethod
    def update_channel_settings(self, channel_id: str, settings: Dict[str, Any]) -> ChannelPolicy:
        ...

    @abstractmethod
    def delete_channel(self, channel_id: str) -> ChannelPolicy:
        ...


class ServerDirectory(AuthorizationOracle, MessageStore, ChannelMetadataStore):
    """In-memory servers, channels and message history with JSON persistence"""

    def __init__(self, data_file: Optional[str] = None, history_limit: int = 500):
        self.data_file = data_file
        self.history_limit = history_limit
        self.servers: Dict[str, ServerInfo] = {}
        self.channels: Dict[str, ChannelPolicy] = {}
        self.messages: Dict[str, deque] = {}
        self._message_ids = itertools.count(1)

        if not self.load():
            self.seed_demo()

    def seed_demo(self):
        """Create the demo server used when no data file exists"""
        self.add_server("demo", "Demo Server", owner="admin", admins={"admin"})
        self.channels["general"] = ChannelPolicy.create(
            "general", "demo", "General Chat", ChannelType.TEXT
        )
        self.channels["announcements"] = ChannelPolicy.create(
            "announcements", "demo", "Announcements", ChannelType.ANNOUNCEMENT
        )
        self.channels["voice1"] = ChannelPolicy.create(
            "voice1", "demo", "General Voice", ChannelType.VOICE
        )
        logger.info("Seeded demo server")

    def load(self) -> bool:
        """
        Load servers and channels from the data file

        A file that cannot be read back is moved aside to <data_file>.bad so the
        next save does not overwrite it, and the directory starts from the seed.
        """
        if not self.data_file or not os.path.exists(self.data_file):
            logger.info("No existing directory data found, starting fresh")
            return False
        try:
            with open(self.data_file, 'r') as f:
                data = json.load(f)
            servers = [
                ServerInfo(
                    server_id=server['id'],
                    name=server.get('name', server['id']),
                    owner=server['owner'],
                    admins=set(server.get('admins', []))
                )
                for server in data.get('servers', [])
            ]
            channels = [ChannelPolicy.from_dict(channel) for channel in data.get('channels', [])]
        except OSError as e:
            logger.error(f"Error loading directory: {e}")
            return False
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            bad_file = self.data_file + '.bad'
            logger.error(f"Malformed directory file {self.data_file} ({e!r}), moved to {bad_file}")
            os.replace(self.data_file, bad_file)
            return False

        for server in servers:
            self.servers[server.server_id] = server
        for policy in channels:
            self.channels[policy.channel_id] = policy

        logger.info(f"Loaded {len(self.servers)} servers and {len(self.channels)} channels from {self.data_file}")
        return True

    def save(self):
        """Write servers and channels to the data file, replacing it atomically"""
        if not self.data_file:
            return
        data = {
            'servers': [
                {
                    'id': s.server_id,
                    'name': s.name,
                    'owner': s.owner,
                    'admins': sorted(s.admins)
                }
                for s in self.servers.values()
            ],
            'channels': [c.to_dict() for c in self.channels.values()]
        }
        temp_file = self.data_file + '.tmp'
        try:
            with open(temp_file, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(temp_file, self.data_file)
            logger.debug(f"Saved directory to {self.data_file}")
        except OSError as e:
            logger.error(f"Error saving directory: {e}")

    # Servers / authorization

    def add_server(self, server_id: str, name: str, owner: str, admins=None) -> ServerInfo:
        server = ServerInfo(server_id=server_id, name=name, owner=owner, admins=set(admins or ()))
        self.servers[server_id] = server
        return server

    def get_server(self, server_id: str) -> ServerInfo:
        server = self.servers.get(server_id)
        if server is None:
            raise NotFound("Server not found", server_id)
        return server

    def has_server(self, server_id: str) -> bool:
        return server_id in self.servers

    def is_owner(self, server_id: str, username: str) -> bool:
        server = self.servers.get(server_id)
        return server is not None and server.is_owner(username)

    def is_admin(self, server_id: str, username: str) -> bool:
        server = self.servers.get(server_id)
        return server is not None and server.is_admin(username)

    # Channels

    def get_channel_policy(self, channel_id: str) -> ChannelPolicy:
        policy = self.channels.get(channel_id)
        if policy is None:
            raise NotFound("Channel not found", channel_id)
        return policy

    def list_channels(self, server_id: str) -> List[ChannelPolicy]:
        return [c for c in self.channels.values() if c.server_id == server_id]

    def create_channel(self, server_id: str, name: str, channel_type: ChannelType,
                       settings: Optional[Dict[str, Any]] = None) -> ChannelPolicy:
        self.get_server(server_id)
        channel_id = uuid.uuid4().hex[:9]
        policy = ChannelPolicy.create(channel_id, server_id, name, channel_type, settings)
        self.channels[channel_id] = policy
        self.save()
        return policy

    def update_channel_settings(self, channel_id: str, settings: Dict[str, Any]) -> ChannelPolicy:
        policy = self.get_channel_policy(channel_id)
        policy.apply_settings(settings)
        self.save()
        return policy

    def delete_channel(self, channel_id: str) -> ChannelPolicy:
        policy = self.channels.pop(channel_id, None)
        if policy is None:
            raise NotFound("Channel not found", channel_id)
        self.messages.pop(channel_id, None)
        self.save()
        return policy

    # Messages

    async def persist(self, channel_id: str, username: str, text: str,
                      is_admin: bool = False, is_owner: bool = False) -> MessageRecord:
        if channel_id not in self.channels:
            raise StoreError("Channel no longer exists", channel_id)
        record = MessageRecord(
            message_id=next(self._message_ids),
            channel_id=channel_id,
            username=username,
            text=text,
            timestamp=time.time(),
            is_admin=is_admin,
            is_owner=is_owner
        )
        self.messages.setdefault(channel_id, deque(maxlen=self.history_limit)).append(record)
        return record

    async def history(self, channel_id: str) -> List[MessageRecord]:
        return list(self.messages.get(channel_id, ()))
