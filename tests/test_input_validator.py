#!/usr/bin/env python3
"""
Tests for input validation
"""

import unittest
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import ValidationError
from input_validator import InputValidator
from models import ChannelType


class TestInputValidator(unittest.TestCase):
    """Test input validation functionality"""

    def test_valid_username(self):
        is_valid, error = InputValidator.validate_username("alice_123")
        self.assertTrue(is_valid)
        self.assertIsNone(error)

    def test_username_length(self):
        self.assertFalse(InputValidator.validate_username("ab")[0])
        self.assertFalse(InputValidator.validate_username("a" * 33)[0])
        self.assertTrue(InputValidator.validate_username("a" * 32)[0])

    def test_username_invalid_chars(self):
        is_valid, error = InputValidator.validate_username("alice bob")
        self.assertFalse(is_valid)
        self.assertIn("letters", error)

    def test_username_reserved(self):
        is_valid, error = InputValidator.validate_username("System")
        self.assertFalse(is_valid)
        self.assertIn("reserved", error)

    def test_username_wrong_type(self):
        self.assertFalse(InputValidator.validate_username(None)[0])
        self.assertFalse(InputValidator.validate_username(42)[0])

    def test_validate_id(self):
        self.assertTrue(InputValidator.validate_id("voice1")[0])
        self.assertTrue(InputValidator.validate_id("a3f9c2d1e")[0])
        self.assertFalse(InputValidator.validate_id("")[0])
        self.assertFalse(InputValidator.validate_id("../etc")[0])
        self.assertFalse(InputValidator.validate_id("x" * 65)[0])

        is_valid, error = InputValidator.validate_id(None, "channel id")
        self.assertIn("channel id", error)

    def test_validate_message(self):
        self.assertTrue(InputValidator.validate_message("hello")[0])
        self.assertFalse(InputValidator.validate_message("")[0])
        self.assertFalse(InputValidator.validate_message("  \n ")[0])
        self.assertFalse(InputValidator.validate_message("a\x00b")[0])
        self.assertFalse(InputValidator.validate_message("x" * 4001)[0])
        self.assertFalse(InputValidator.validate_message(["hello"])[0])

    def test_validate_channel_name(self):
        self.assertTrue(InputValidator.validate_channel_name("Off Topic")[0])
        self.assertFalse(InputValidator.validate_channel_name("   ")[0])
        self.assertFalse(InputValidator.validate_channel_name("x" * 101)[0])
        self.assertFalse(InputValidator.validate_channel_name("bad\x07name")[0])

    def test_validate_channel_type(self):
        for kind in ("text", "announcement", "voice"):
            self.assertTrue(InputValidator.validate_channel_type(kind)[0])
        self.assertFalse(InputValidator.validate_channel_type("video")[0])

    def test_require(self):
        InputValidator.require((True, None))
        with self.assertRaises(ValidationError) as ctx:
            InputValidator.require((False, "nope"), "general")
        self.assertEqual(ctx.exception.message, "nope")
        self.assertEqual(ctx.exception.scope_id, "general")


class TestChannelSettings(unittest.TestCase):
    """Settings fragments are checked against the channel type"""

    def test_text_settings(self):
        valid = InputValidator.validate_channel_settings(
            {"admin_only": True, "slow_mode_seconds": 30}, ChannelType.TEXT
        )
        self.assertTrue(valid[0])

    def test_empty_fragment(self):
        self.assertTrue(InputValidator.validate_channel_settings({}, ChannelType.VOICE)[0])

    def test_voice_setting_on_text_channel(self):
        is_valid, error = InputValidator.validate_channel_settings({"user_limit": 5}, ChannelType.TEXT)
        self.assertFalse(is_valid)
        self.assertIn("user_limit", error)

    def test_text_setting_on_voice_channel(self):
        self.assertFalse(InputValidator.validate_channel_settings(
            {"slow_mode_seconds": 5}, ChannelType.VOICE
        )[0])

    def test_ranges(self):
        self.assertTrue(InputValidator.validate_channel_settings({"user_limit": 99}, ChannelType.VOICE)[0])
        self.assertFalse(InputValidator.validate_channel_settings({"user_limit": 100}, ChannelType.VOICE)[0])
        self.assertFalse(InputValidator.validate_channel_settings({"user_limit": -1}, ChannelType.VOICE)[0])
        self.assertFalse(InputValidator.validate_channel_settings(
            {"slow_mode_seconds": 21601}, ChannelType.ANNOUNCEMENT
        )[0])

    def test_types(self):
        self.assertFalse(InputValidator.validate_channel_settings({"admin_only": 1}, ChannelType.TEXT)[0])
        self.assertFalse(InputValidator.validate_channel_settings({"slow_mode_seconds": True}, ChannelType.TEXT)[0])
        self.assertFalse(InputValidator.validate_channel_settings({"slow_mode_seconds": 2.5}, ChannelType.TEXT)[0])
        self.assertFalse(InputValidator.validate_channel_settings("admin_only", ChannelType.TEXT)[0])


if __name__ == '__main__':
    unittest.main()
