#!/usr/bin/env python3
"""
Tests for presence_registry.py and room_index.py
"""

import unittest
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import NotFound
from models import Scope, ScopeKind
from presence_registry import PresenceRegistry
from room_index import RoomMembershipIndex


class TestPresenceRegistry(unittest.TestCase):
    """Test connection records"""

    def setUp(self):
        self.registry = PresenceRegistry()

    def test_register_creates_empty_record(self):
        """New connections have no identity or scopes"""
        conn_id = self.registry.register_connection()
        record = self.registry.lookup(conn_id)

        self.assertEqual(record.conn_id, conn_id)
        self.assertIsNone(record.username)
        self.assertIsNone(record.server_id)
        self.assertIsNone(record.channel_id)
        self.assertIsNone(record.voice_id)
        self.assertFalse(record.identified)

    def test_connection_ids_are_unique(self):
        ids = {self.registry.register_connection() for _ in range(50)}
        self.assertEqual(len(ids), 50)
        self.assertEqual(len(self.registry), 50)

    def test_set_identity_keeps_other_scopes(self):
        """set_identity is idempotent and leaves channel/voice alone"""
        conn_id = self.registry.register_connection()
        self.registry.set_scope(conn_id, ScopeKind.CHANNEL, "general")
        self.registry.set_scope(conn_id, ScopeKind.VOICE, "voice1")

        self.registry.set_identity(conn_id, "alice", "demo")
        self.registry.set_identity(conn_id, "alice", "demo")
        record = self.registry.lookup(conn_id)

        self.assertTrue(record.identified)
        self.assertEqual(record.username, "alice")
        self.assertEqual(record.server_id, "demo")
        self.assertEqual(record.channel_id, "general")
        self.assertEqual(record.voice_id, "voice1")

    def test_lookup_unknown_raises(self):
        with self.assertRaises(NotFound):
            self.registry.lookup("missing")
        self.assertIsNone(self.registry.get("missing"))

    def test_unregister(self):
        """Unregister removes the record and tolerates repeats"""
        conn_id = self.registry.register_connection()
        self.registry.unregister(conn_id)
        self.registry.unregister(conn_id)

        self.assertNotIn(conn_id, self.registry)
        self.assertEqual(len(self.registry), 0)


class TestRoomMembershipIndex(unittest.TestCase):
    """Test scope occupancy"""

    def setUp(self):
        self.rooms = RoomMembershipIndex()
        self.general = Scope.channel("general")
        self.voice = Scope.voice("voice1")
        self.server = Scope.server("demo")

    def test_join_is_idempotent(self):
        self.rooms.join(self.general, "c1")
        self.rooms.join(self.general, "c1")

        self.assertEqual(self.rooms.occupants(self.general), ["c1"])
        self.assertEqual(self.rooms.occupancy(self.general), 1)

    def test_occupants_in_join_order(self):
        for conn_id in ("c3", "c1", "c2"):
            self.rooms.join(self.general, conn_id)
        self.assertEqual(self.rooms.occupants(self.general), ["c3", "c1", "c2"])

    def test_leave_absent_is_noop(self):
        self.assertFalse(self.rooms.leave(self.general, "nobody"))
        self.rooms.join(self.general, "c1")
        self.assertTrue(self.rooms.leave(self.general, "c1"))
        self.assertFalse(self.rooms.leave(self.general, "c1"))
        self.assertEqual(self.rooms.occupants(self.general), [])

    def test_channel_and_voice_scopes_are_distinct(self):
        """A text channel and a voice room never share occupants by id"""
        self.rooms.join(Scope.channel("x"), "c1")
        self.assertEqual(self.rooms.occupants(Scope.voice("x")), [])

    def test_leave_all_returns_each_scope_once(self):
        for scope in (self.server, self.general, self.voice):
            self.rooms.join(scope, "c1")
            self.rooms.join(scope, "c1")
        self.rooms.join(self.general, "c2")

        vacated = self.rooms.leave_all("c1")

        self.assertEqual(sorted(vacated, key=str), sorted([self.server, self.general, self.voice], key=str))
        self.assertEqual(self.rooms.scopes_of("c1"), [])
        self.assertEqual(self.rooms.occupants(self.general), ["c2"])
        self.assertEqual(self.rooms.leave_all("c1"), [])

    def test_empty_scopes_are_pruned(self):
        self.rooms.join(self.voice, "c1")
        self.rooms.leave(self.voice, "c1")
        self.assertEqual(self.rooms.scopes(), set())

    def test_scopes_by_kind(self):
        self.rooms.join(self.server, "c1")
        self.rooms.join(self.voice, "c1")
        self.assertEqual(self.rooms.scopes(ScopeKind.VOICE), {self.voice})


if __name__ == '__main__':
    unittest.main()
