"""
Channel Policy Engine for Parley
Evaluates admin-only posting, slow mode and voice user limits
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from errors import PermissionDenied, SlowModeActive, VoiceChannelFull, NotFound
from models import ChannelPolicy
from rate_limiter import SlowModeTracker


logger = logging.getLogger('Parley-Policy')


@dataclass
class PostTicket:
    """Slow-mode stamp taken for an accepted post, kept so it can be undone"""
    key: Optional[Tuple[str, str]] = None
    stamped: Optional[float] = None
    previous: Optional[float] = None


class ChannelPolicyEngine:
    """Stateless per call, apart from the slow-mode timers"""

    def __init__(self, slow_mode: SlowModeTracker = None):
        self.slow_mode = slow_mode or SlowModeTracker()

    def check_post(self, policy: ChannelPolicy, username: str, is_privileged: bool,
                   now: Optional[float] = None) -> PostTicket:
        """
        Decide whether a user may post to a channel

        Args:
            policy: Channel metadata
            username: Sender identity (timers are keyed by user, not connection)
            is_privileged: Sender is the server owner or an admin
            now: Override of the clock

        Returns:
            A ticket to pass to release() if the post is later refused

        Raises:
            PermissionDenied, SlowModeActive
        """
        if not policy.channel_type.is_text:
            raise NotFound(f"{policy.name} is not a text channel", policy.channel_id)

        if policy.admin_only and not is_privileged:
            raise PermissionDenied(
                "Only server owners and admins can send messages in this channel",
                policy.channel_id
            )

        if policy.slow_mode_seconds <= 0:
            return PostTicket()

        key = (policy.channel_id, username)
        if now is None:
            now = self.slow_mode.clock()
        allowed, remaining, previous = self.slow_mode.try_acquire(
            key, policy.slow_mode_seconds, now
        )
        if not allowed:
            logger.debug(f"Slow mode hit for {username} in {policy.channel_id}, {remaining:.2f}s left")
            raise SlowModeActive(SlowModeTracker.wait_seconds(remaining), policy.channel_id)
        return PostTicket(key=key, stamped=now, previous=previous)

    def release(self, ticket: PostTicket):
        """Roll back the slow-mode stamp of a post the store refused"""
        if ticket.key is not None:
            self.slow_mode.restore(ticket.key, ticket.stamped, ticket.previous)

    def check_voice_join(self, policy: ChannelPolicy, occupancy: int):
        """
        Raises:
            VoiceChannelFull when the room is at its user limit
        """
        if policy.user_limit > 0 and occupancy >= policy.user_limit:
            raise VoiceChannelFull("Voice channel is full", policy.channel_id)

    def forget_channel(self, channel_id: str):
        self.slow_mode.forget_channel(channel_id)
