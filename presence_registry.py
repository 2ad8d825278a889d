"""
Presence Registry for Parley
Maps connection ids to identity and current scopes
"""

import uuid
from typing import Dict, Optional, Any, List

from errors import NotFound
from models import ConnectionRecord, ScopeKind


class PresenceRegistry:
    """Pure state store of live connections"""

    def __init__(self):
        self._records: Dict[str, ConnectionRecord] = {}

    def register_connection(self, sink: Any = None) -> str:
        """
        Create an entry for a freshly connected transport

        Args:
            sink: Outbound frame queue of the connection

        Returns:
            The new opaque connection id
        """
        conn_id = uuid.uuid4().hex
        self._records[conn_id] = ConnectionRecord(conn_id=conn_id, sink=sink)
        return conn_id

    def set_identity(self, conn_id: str, username: str, server_id: str) -> ConnectionRecord:
        """Set user and server scope; other scope fields are left as they are"""
        record = self.lookup(conn_id)
        record.username = username
        record.server_id = server_id
        return record

    def set_scope(self, conn_id: str, kind: ScopeKind, scope_id: Optional[str]):
        """Set or clear one scope field of a record"""
        record = self.lookup(conn_id)
        if kind == ScopeKind.SERVER:
            record.server_id = scope_id
        elif kind == ScopeKind.CHANNEL:
            record.channel_id = scope_id
        else:
            record.voice_id = scope_id

    def lookup(self, conn_id: str) -> ConnectionRecord:
        """Get a record, raising NotFound for unknown ids"""
        record = self._records.get(conn_id)
        if record is None:
            raise NotFound(f"Connection {conn_id} not found", conn_id)
        return record

    def get(self, conn_id: str) -> Optional[ConnectionRecord]:
        return self._records.get(conn_id)

    def unregister(self, conn_id: str):
        """Remove a record; no-op if already gone"""
        self._records.pop(conn_id, None)

    def connections(self) -> List[ConnectionRecord]:
        return list(self._records.values())

    def __contains__(self, conn_id: str) -> bool:
        return conn_id in self._records

    def __len__(self) -> int:
        return len(self._records)
