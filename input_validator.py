"""
Input validation for Parley
Validates every field a client can put in a frame
"""

import re
from typing import Any, Optional, Tuple

from errors import ValidationError
from models import ChannelType


class InputValidator:
    """Validates user inputs"""

    USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_.-]{3,32}$')
    ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{1,64}$')

    MAX_MESSAGE_LENGTH = 4000
    MAX_CHANNEL_NAME_LENGTH = 100
    MAX_SLOW_MODE_SECONDS = 21600
    MAX_USER_LIMIT = 99

    RESERVED_USERNAMES = ('server', 'system')

    @staticmethod
    def validate_username(username: Any) -> Tuple[bool, Optional[str]]:
        """
        Validate an asserted username

        Args:
            username: Username to validate

        Returns:
            (is_valid, error_message) tuple
        """
        if not username or not isinstance(username, str):
            return (False, "Username cannot be empty")

        if not InputValidator.USERNAME_PATTERN.match(username):
            return (False, "Username must be 3-32 letters, numbers, '.', '_' or '-'")

        if username.lower() in InputValidator.RESERVED_USERNAMES:
            return (False, f"Username '{username}' is reserved")

        return (True, None)

    @staticmethod
    def validate_id(value: Any, label: str = "ID") -> Tuple[bool, Optional[str]]:
        """Validate a server, channel or connection id"""
        if not value or not isinstance(value, str):
            return (False, f"{label} cannot be empty")

        if not InputValidator.ID_PATTERN.match(value):
            return (False, f"Invalid {label} format")

        return (True, None)

    @staticmethod
    def validate_message(message: Any) -> Tuple[bool, Optional[str]]:
        """
        Validate message content

        Args:
            message: Message text to validate

        Returns:
            (is_valid, error_message) tuple
        """
        if not isinstance(message, str) or not message.strip():
            return (False, "Message cannot be empty")

        if len(message) > InputValidator.MAX_MESSAGE_LENGTH:
            return (False, f"Message exceeds maximum length of {InputValidator.MAX_MESSAGE_LENGTH}")

        # Check for null bytes (potential injection)
        if '\x00' in message:
            return (False, "Message contains invalid characters")

        return (True, None)

    @staticmethod
    def validate_channel_name(name: Any) -> Tuple[bool, Optional[str]]:
        if not isinstance(name, str) or not name.strip():
            return (False, "Channel name cannot be empty")

        if len(name) > InputValidator.MAX_CHANNEL_NAME_LENGTH:
            return (False, f"Channel name must be at most {InputValidator.MAX_CHANNEL_NAME_LENGTH} characters")

        if not name.isprintable():
            return (False, "Channel name contains invalid characters")

        return (True, None)

    @staticmethod
    def validate_channel_type(channel_type: Any) -> Tuple[bool, Optional[str]]:
        try:
            ChannelType(channel_type)
        except ValueError:
            return (False, f"Unknown channel type: {channel_type}")
        return (True, None)

    @staticmethod
    def validate_channel_settings(settings: Any, channel_type: ChannelType) -> Tuple[bool, Optional[str]]:
        """
        Validate a settings fragment for a channel of the given type

        Only admin_only and slow_mode_seconds apply to text/announcement
        channels, only user_limit to voice channels.

        Returns:
            (is_valid, error_message) tuple
        """
        if not isinstance(settings, dict):
            return (False, "Settings must be an object")

        if channel_type == ChannelType.VOICE:
            allowed = {'user_limit': InputValidator.MAX_USER_LIMIT}
        else:
            allowed = {'admin_only': None, 'slow_mode_seconds': InputValidator.MAX_SLOW_MODE_SECONDS}

        for key, value in settings.items():
            if key not in allowed:
                return (False, f"Setting '{key}' does not apply to {channel_type.value} channels")

            limit = allowed[key]
            if limit is None:
                if not isinstance(value, bool):
                    return (False, f"{key} must be true or false")
            else:
                # bool is an int subclass
                if isinstance(value, bool) or not isinstance(value, int):
                    return (False, f"{key} must be a whole number")
                if value < 0 or value > limit:
                    return (False, f"{key} must be between 0 and {limit}")

        return (True, None)

    @staticmethod
    def require(result: Tuple[bool, Optional[str]], scope_id: Optional[str] = None):
        """Raise ValidationError for a failed (is_valid, error) tuple"""
        is_valid, error = result
        if not is_valid:
            raise ValidationError(error, scope_id)
