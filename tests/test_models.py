#!/usr/bin/env python3
"""
Tests for models.py and errors.py
"""

import unittest
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import PermissionDenied, RateLimited, StoreError, TransportDropped, ValidationError
from models import ChannelPolicy, ChannelType, ConnectionRecord, Scope, ScopeKind


class TestScope(unittest.TestCase):

    def test_scopes_are_hashable_values(self):
        self.assertEqual(Scope.channel("general"), Scope(ScopeKind.CHANNEL, "general"))
        self.assertEqual(len({Scope.voice("x"), Scope.voice("x"), Scope.channel("x")}), 2)
        self.assertEqual(str(Scope.server("demo")), "server:demo")


class TestConnectionRecord(unittest.TestCase):

    def test_identified(self):
        record = ConnectionRecord(conn_id="c1")
        self.assertFalse(record.identified)
        record.username = "alice"
        self.assertFalse(record.identified)
        record.server_id = "demo"
        self.assertTrue(record.identified)

    def test_scope_field(self):
        record = ConnectionRecord(conn_id="c1", server_id="demo", voice_id="voice1")
        self.assertEqual(record.scope_field(ScopeKind.SERVER), "demo")
        self.assertIsNone(record.scope_field(ScopeKind.CHANNEL))
        self.assertEqual(record.scope_field(ScopeKind.VOICE), "voice1")


class TestChannelPolicy(unittest.TestCase):

    def test_announcement_defaults_to_admin_only(self):
        self.assertTrue(ChannelPolicy.create("a", "demo", "A", ChannelType.ANNOUNCEMENT).admin_only)
        self.assertFalse(ChannelPolicy.create("t", "demo", "T", ChannelType.TEXT).admin_only)

    def test_settings_override_defaults(self):
        policy = ChannelPolicy.create("a", "demo", "A", ChannelType.ANNOUNCEMENT, {"admin_only": False})
        self.assertFalse(policy.admin_only)

    def test_settings_by_type(self):
        voice = ChannelPolicy.create("v", "demo", "V", ChannelType.VOICE, {"user_limit": 5})
        self.assertEqual(voice.settings(), {"user_limit": 5})

        text = ChannelPolicy.create("t", "demo", "T", ChannelType.TEXT, {"slow_mode_seconds": 3})
        self.assertEqual(text.settings(), {"admin_only": False, "slow_mode_seconds": 3})

    def test_from_dict(self):
        policy = ChannelPolicy.from_dict({
            "id": "voice1",
            "server_id": "demo",
            "type": "voice",
            "settings": {"user_limit": 2}
        })
        self.assertEqual(policy.name, "voice1")
        self.assertEqual(policy.channel_type, ChannelType.VOICE)
        self.assertEqual(policy.user_limit, 2)
        self.assertEqual(policy.to_dict()["type"], "voice")


class TestErrors(unittest.TestCase):

    def test_payload(self):
        error = PermissionDenied("Nope", "general")
        self.assertEqual(error.to_payload(), {"error": "Nope", "code": "permission_denied"})
        self.assertEqual(error.error_event, "permission-error")
        self.assertEqual(str(error), "Nope")

    def test_default_events(self):
        self.assertEqual(ValidationError("bad").error_event, "error")
        self.assertEqual(StoreError("disk").error_event, "message-error")

    def test_rate_limited_carries_retry_after(self):
        error = RateLimited("Too many signaling messages", 3)
        self.assertEqual(error.to_payload(), {
            "error": "Too many signaling messages", "code": "rate_limited", "retry_after": 3
        })

    def test_transport_dropped_names_target(self):
        error = TransportDropped("Target gone not connected", "gone")
        self.assertEqual(error.code, "target_unreachable")
        self.assertEqual(error.scope_id, "gone")


if __name__ == '__main__':
    unittest.main()
