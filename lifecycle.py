"""
Connection Lifecycle Manager for Parley

Single owner of the presence registry and the room index. Every inbound
event ends up in one of the public methods below; each one runs to
completion without yielding to the event loop, except for the awaited
message store calls, so registry and index updates are never interleaved.
"""

import logging
from typing import Any, Dict, List, Optional

from broadcast import BroadcastDispatcher
from channel_policy import ChannelPolicyEngine
from directory import AuthorizationOracle, ChannelMetadataStore, MessageStore
from errors import (
    ParleyError, NotFound, PermissionDenied, RateLimited, StoreError, TransportDropped, ValidationError
)
from input_validator import InputValidator
from models import ChannelPolicy, ChannelType, ConnectionRecord, Scope, ScopeKind
from presence_registry import PresenceRegistry
from protocol import MessageType, MEDIA_TOGGLES
from rate_limiter import RateLimiter, SlowModeTracker
from room_index import RoomMembershipIndex
from signaling_relay import SignalingRelay


logger = logging.getLogger('Parley-Lifecycle')


class ConnectionLifecycleManager:
    """Join/leave/disconnect transitions across registry, index, policy and relay"""

    def __init__(self, channels: ChannelMetadataStore,
                 authorization: Optional[AuthorizationOracle] = None,
                 store: Optional[MessageStore] = None,
                 policy: Optional[ChannelPolicyEngine] = None,
                 message_limiter: Optional[RateLimiter] = None,
                 signal_limiter: Optional[RateLimiter] = None):
        self.channels = channels
        self.auth = authorization or channels
        self.store = store or channels

        self.registry = PresenceRegistry()
        self.rooms = RoomMembershipIndex()
        self.dispatcher = BroadcastDispatcher(self.registry, self.rooms)
        self.relay = SignalingRelay(self.dispatcher)
        self.policy = policy or ChannelPolicyEngine()

        # Flood limits per connection
        self.message_limiter = message_limiter or RateLimiter(max_requests=30, time_window=10.0)
        self.signal_limiter = signal_limiter or RateLimiter(max_requests=200, time_window=10.0)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _enter(self, conn_id: str, scope: Scope):
        """Only path that adds a connection to a scope"""
        self.rooms.join(scope, conn_id)
        self.registry.set_scope(conn_id, scope.kind, scope.scope_id)

    def _exit(self, conn_id: str, scope: Scope):
        """Only path that removes a connection from a scope"""
        self.rooms.leave(scope, conn_id)
        record = self.registry.get(conn_id)
        if record is not None and record.scope_field(scope.kind) == scope.scope_id:
            self.registry.set_scope(conn_id, scope.kind, None)

    def _identified(self, conn_id: str) -> ConnectionRecord:
        record = self.registry.lookup(conn_id)
        if not record.identified:
            raise ValidationError("Join a server first")
        return record

    def _channel_of(self, record: ConnectionRecord, channel_id: Any) -> ChannelPolicy:
        """Channel of the connection's current server"""
        InputValidator.require(InputValidator.validate_id(channel_id, "channel id"), channel_id)
        policy = self.channels.get_channel_policy(channel_id)
        if policy.server_id != record.server_id:
            raise NotFound("Channel not found", channel_id)
        return policy

    def _require_privileged(self, record: ConnectionRecord, action: str, scope_id: str):
        if not self.auth.is_owner_or_admin(record.server_id, record.username):
            raise PermissionDenied(f"You do not have permission to {action}", scope_id)

    def _check_flood(self, limiter: RateLimiter, conn_id: str, message: str, scope_id: Optional[str] = None):
        if not limiter.is_allowed(conn_id):
            retry_after = SlowModeTracker.wait_seconds(limiter.get_retry_after(conn_id))
            raise RateLimited(message, retry_after, scope_id)

    def _reject(self, conn_id: str, error: ParleyError, event: MessageType, scope_field: str = "channel_id"):
        """Report a rejection to the initiating connection only"""
        logger.debug(f"Rejected {event.value} for {conn_id}: {error.message}")
        self.dispatcher.send_error(conn_id, error, event, scope_field)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def members(self, server_id: str) -> List[str]:
        """Distinct usernames connected to a server, in join order"""
        members = []
        for conn_id in self.rooms.occupants(Scope.server(server_id)):
            record = self.registry.get(conn_id)
            if record and record.username and record.username not in members:
                members.append(record.username)
        return members

    def voice_users(self, channel_id: str, exclude: Optional[str] = None) -> List[Dict[str, str]]:
        users = []
        for conn_id in self.rooms.occupants(Scope.voice(channel_id)):
            record = self.registry.get(conn_id)
            if record and conn_id != exclude:
                users.append(record.describe())
        return users

    def _broadcast_user_list(self, server_id: str):
        self.dispatcher.broadcast(
            Scope.server(server_id),
            MessageType.USER_LIST,
            {"server_id": server_id, "members": self.members(server_id)}
        )

    def _broadcast_voice_users(self, server_id: Optional[str], channel_id: str):
        # the server scope contains every voice occupant, so this also
        # reaches the room itself and keeps the sidebars of everyone else current
        if server_id is None:
            return
        self.dispatcher.broadcast(
            Scope.server(server_id),
            MessageType.VOICE_USERS_UPDATED,
            {"channel_id": channel_id, "users": self.voice_users(channel_id)}
        )

    async def _send_history(self, conn_id: str, channel_id: str):
        history = await self.store.history(channel_id)
        self.dispatcher.send(conn_id, MessageType.MESSAGES_HISTORY, {
            "channel_id": channel_id,
            "messages": [m.to_dict() for m in history]
        })

    # ------------------------------------------------------------------
    # Connect / server membership
    # ------------------------------------------------------------------

    def connect(self, sink: Any) -> str:
        """Register a transport connection and greet it with its id"""
        conn_id = self.registry.register_connection(sink)
        self.dispatcher.send(conn_id, MessageType.CONNECTED, {"conn_id": conn_id})
        logger.debug(f"Connection {conn_id} registered")
        return conn_id

    def join_server(self, conn_id: str, username: Any, server_id: Any) -> bool:
        try:
            InputValidator.require(InputValidator.validate_username(username), server_id)
            InputValidator.require(InputValidator.validate_id(server_id, "server id"), server_id)
            if not self.channels.has_server(server_id):
                raise NotFound("Server not found", server_id)

            record = self.registry.lookup(conn_id)
            if record.server_id is not None and record.server_id != server_id:
                self._leave_server(record)

            self.registry.set_identity(conn_id, username, server_id)
            self._enter(conn_id, Scope.server(server_id))
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.ERROR, scope_field="server_id")
            return False

        channels = self.channels.list_channels(server_id)
        self.dispatcher.send(conn_id, MessageType.SERVER_JOINED, {
            "server_id": server_id,
            "username": username,
            "channels": [c.to_dict() for c in channels],
            "voice_users": {
                c.channel_id: self.voice_users(c.channel_id)
                for c in channels if c.channel_type == ChannelType.VOICE
            }
        })
        self._broadcast_user_list(server_id)
        logger.info(f"{username} ({conn_id}) joined server {server_id}")
        return True

    def _leave_server(self, record: ConnectionRecord):
        """Drop voice, channel and server scope when switching servers"""
        old_server = record.server_id
        self._leave_voice(record)
        if record.channel_id is not None:
            self._exit(record.conn_id, Scope.channel(record.channel_id))
        self._exit(record.conn_id, Scope.server(old_server))
        self._broadcast_user_list(old_server)
        logger.info(f"{record.username} ({record.conn_id}) left server {old_server}")

    # ------------------------------------------------------------------
    # Text channels
    # ------------------------------------------------------------------

    async def join_channel(self, conn_id: str, channel_id: Any) -> bool:
        try:
            record = self._identified(conn_id)
            policy = self._channel_of(record, channel_id)
            if not policy.channel_type.is_text:
                raise ValidationError("Not a text channel", channel_id)

            if record.channel_id is not None and record.channel_id != channel_id:
                self._exit(conn_id, Scope.channel(record.channel_id))
            self._enter(conn_id, Scope.channel(channel_id))
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.MESSAGE_ERROR)
            return False

        await self._send_history(conn_id, channel_id)
        return True

    def leave_channel(self, conn_id: str, channel_id: Any) -> bool:
        record = self.registry.get(conn_id)
        if record is None or record.channel_id is None:
            return False
        if channel_id is not None and record.channel_id != channel_id:
            return False
        self._exit(conn_id, Scope.channel(record.channel_id))
        return True

    async def get_messages(self, conn_id: str, channel_id: Any) -> bool:
        try:
            record = self._identified(conn_id)
            policy = self._channel_of(record, channel_id)
            if not policy.channel_type.is_text:
                raise ValidationError("Not a text channel", channel_id)
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.MESSAGE_ERROR)
            return False

        await self._send_history(conn_id, channel_id)
        return True

    async def send_message(self, conn_id: str, channel_id: Any, text: Any) -> bool:
        """
        Policy check, persist, then broadcast to the channel

        A message is broadcast if and only if the store accepted it.
        """
        try:
            record = self._identified(conn_id)
            policy = self._channel_of(record, channel_id)
            InputValidator.require(InputValidator.validate_message(text), channel_id)

            self._check_flood(self.message_limiter, conn_id, "You are sending messages too quickly", channel_id)

            is_owner = self.auth.is_owner(policy.server_id, record.username)
            is_admin = self.auth.is_admin(policy.server_id, record.username)
            ticket = self.policy.check_post(policy, record.username, is_owner or is_admin)

            try:
                message = await self.store.persist(
                    channel_id, record.username, text, is_admin=is_admin, is_owner=is_owner
                )
            except StoreError:
                self.policy.release(ticket)
                raise
            except Exception as e:
                self.policy.release(ticket)
                logger.error(f"Message store failed for {channel_id}: {e}")
                raise StoreError("Message could not be saved", channel_id) from e
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.MESSAGE_ERROR)
            return False

        payload = {"channel_id": channel_id, "message": message.to_dict()}
        scope = Scope.channel(channel_id)
        self.dispatcher.broadcast(scope, MessageType.NEW_MESSAGE, payload)
        if not self.rooms.contains(scope, conn_id):
            self.dispatcher.send(conn_id, MessageType.NEW_MESSAGE, payload)
        return True

    # ------------------------------------------------------------------
    # Voice rooms
    # ------------------------------------------------------------------

    def join_voice(self, conn_id: str, channel_id: Any) -> bool:
        try:
            record = self._identified(conn_id)
            policy = self._channel_of(record, channel_id)
            if policy.channel_type != ChannelType.VOICE:
                raise ValidationError("Not a voice channel", channel_id)

            if record.voice_id != channel_id:
                scope = Scope.voice(channel_id)
                self.policy.check_voice_join(policy, self.rooms.occupancy(scope))
                # the old room is left only once the new one has accepted us
                self._leave_voice(record)
                self._enter(conn_id, scope)
                self.dispatcher.broadcast(scope, MessageType.USER_JOINED_VOICE, {
                    "channel_id": channel_id, **record.describe()
                }, exclude=conn_id)
                self._broadcast_voice_users(record.server_id, channel_id)
                logger.info(f"{record.username} ({conn_id}) joined voice {channel_id}")
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.VOICE_ERROR)
            return False

        self.dispatcher.send(conn_id, MessageType.EXISTING_VOICE_USERS, {
            "channel_id": channel_id,
            "users": self.voice_users(channel_id, exclude=conn_id)
        })
        return True

    def leave_voice(self, conn_id: str, channel_id: Any = None) -> bool:
        record = self.registry.get(conn_id)
        if record is None or record.voice_id is None:
            return False
        if channel_id is not None and record.voice_id != channel_id:
            return False
        self._leave_voice(record)
        return True

    def _leave_voice(self, record: ConnectionRecord):
        voice_id = record.voice_id
        if voice_id is None:
            return
        scope = Scope.voice(voice_id)
        self._exit(record.conn_id, scope)
        self.dispatcher.broadcast(scope, MessageType.USER_LEFT_VOICE, {
            "channel_id": voice_id, **record.describe()
        })
        self._broadcast_voice_users(record.server_id, voice_id)
        logger.info(f"{record.username} ({record.conn_id}) left voice {voice_id}")

    # ------------------------------------------------------------------
    # Signaling
    # ------------------------------------------------------------------

    def relay_signal(self, conn_id: str, event: MessageType, target: Any, payload: Any) -> bool:
        """Forward offer/answer/ice-candidate; unknown targets are dropped silently"""
        try:
            self._identified(conn_id)
            InputValidator.require(InputValidator.validate_id(target, "target"))
            self._check_flood(self.signal_limiter, conn_id, "Too many signaling messages")
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.VOICE_ERROR)
            return False

        try:
            self.relay.relay(event, conn_id, target, payload)
        except TransportDropped as e:
            logger.debug(f"Dropped {event.value} from {conn_id}: {e.message}")
            return False
        return True

    def toggle_media(self, conn_id: str, event: MessageType, enabled: Any) -> bool:
        try:
            record = self._identified(conn_id)
            if not isinstance(enabled, bool):
                raise ValidationError("enabled must be true or false", record.voice_id)
            if record.voice_id is None:
                raise ValidationError("Not in a voice channel")
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.VOICE_ERROR)
            return False
        self.relay.broadcast_toggle(MEDIA_TOGGLES[event], conn_id, record.voice_id, enabled)
        return True

    # ------------------------------------------------------------------
    # Channel administration
    # ------------------------------------------------------------------

    def create_channel(self, conn_id: str, name: Any, channel_type: Any,
                       settings: Optional[Dict[str, Any]] = None) -> bool:
        try:
            record = self._identified(conn_id)
            self._require_privileged(record, "create channels", record.server_id)
            InputValidator.require(InputValidator.validate_channel_name(name), record.server_id)
            InputValidator.require(InputValidator.validate_channel_type(channel_type), record.server_id)
            kind = ChannelType(channel_type)
            settings = settings or {}
            InputValidator.require(InputValidator.validate_channel_settings(settings, kind), record.server_id)
            policy = self.channels.create_channel(record.server_id, name.strip(), kind, settings)
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.PERMISSION_ERROR, scope_field="server_id")
            return False

        self.dispatcher.broadcast(Scope.server(record.server_id), MessageType.CHANNEL_ADDED, {
            "channel_type": "voice" if kind == ChannelType.VOICE else "text",
            "channel": policy.to_dict()
        })
        logger.info(f"{record.username} created {kind.value} channel {policy.channel_id} in {record.server_id}")
        return True

    def update_channel_settings(self, conn_id: str, channel_id: Any, settings: Any) -> bool:
        try:
            record = self._identified(conn_id)
            policy = self._channel_of(record, channel_id)
            self._require_privileged(record, "modify channel settings", channel_id)
            InputValidator.require(
                InputValidator.validate_channel_settings(settings, policy.channel_type), channel_id
            )
            new_limit = settings.get("user_limit", 0)
            occupancy = self.rooms.occupancy(Scope.voice(channel_id))
            if new_limit > 0 and occupancy > new_limit:
                raise ValidationError(
                    f"User limit {new_limit} is below the {occupancy} users currently connected",
                    channel_id
                )
            policy = self.channels.update_channel_settings(channel_id, settings)
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.PERMISSION_ERROR)
            return False

        self.dispatcher.broadcast(Scope.server(record.server_id), MessageType.CHANNEL_SETTINGS_UPDATED, {
            "channel_id": channel_id,
            "settings": policy.settings()
        })
        logger.info(f"{record.username} updated settings of {channel_id}: {settings}")
        return True

    def delete_channel(self, conn_id: str, channel_id: Any) -> bool:
        try:
            record = self._identified(conn_id)
            policy = self._channel_of(record, channel_id)
            self._require_privileged(record, "delete channels", channel_id)
            self.channels.delete_channel(channel_id)
        except ParleyError as e:
            self._reject(conn_id, e, MessageType.PERMISSION_ERROR)
            return False

        text_scope = Scope.channel(channel_id)
        for occupant in self.rooms.occupants(text_scope):
            self._exit(occupant, text_scope)
        for occupant in self.rooms.occupants(Scope.voice(channel_id)):
            self._leave_voice(self.registry.lookup(occupant))
        self.policy.forget_channel(channel_id)

        self.dispatcher.broadcast(Scope.server(policy.server_id), MessageType.CHANNEL_REMOVED, {
            "channel_id": channel_id
        })
        logger.info(f"{record.username} deleted channel {channel_id}")
        return True

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------

    def disconnect(self, conn_id: str) -> bool:
        """
        Remove a connection from every scope and from the registry

        Safe to call more than once and after partial cleanup (e.g. an
        explicit leave-voice); only the first call has any effect.

        Returns:
            True if the connection was still registered
        """
        record = self.registry.get(conn_id)
        if record is None:
            return False

        server_id = record.server_id
        vacated = self.rooms.leave_all(conn_id)
        for scope in vacated:
            self.registry.set_scope(conn_id, scope.kind, None)

        for scope in vacated:
            if scope.kind == ScopeKind.VOICE:
                self.dispatcher.broadcast(scope, MessageType.USER_LEFT_VOICE, {
                    "channel_id": scope.scope_id, **record.describe()
                })
                self._broadcast_voice_users(server_id, scope.scope_id)
        for scope in vacated:
            if scope.kind == ScopeKind.SERVER:
                self._broadcast_user_list(scope.scope_id)

        self.registry.unregister(conn_id)
        self.message_limiter.reset(conn_id)
        self.signal_limiter.reset(conn_id)
        logger.info(f"{record.username or 'unidentified'} ({conn_id}) disconnected")
        return True
