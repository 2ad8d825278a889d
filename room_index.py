"""
Room Membership Index for Parley
Maps each scope to the connections occupying it, with the reverse view
needed for disconnect cleanup
"""

from typing import Dict, List, Set

from models import Scope, ScopeKind


class RoomMembershipIndex:
    """Scope -> occupant connection ids, kept in join order"""

    def __init__(self):
        # dicts used as ordered sets so user lists come out in join order
        self._occupants: Dict[Scope, Dict[str, None]] = {}
        self._scopes: Dict[str, Dict[Scope, None]] = {}

    def join(self, scope: Scope, conn_id: str):
        """Add a connection to a scope; re-adding is a no-op"""
        self._occupants.setdefault(scope, {})[conn_id] = None
        self._scopes.setdefault(conn_id, {})[scope] = None

    def leave(self, scope: Scope, conn_id: str) -> bool:
        """
        Remove a connection from a scope

        Returns:
            True if the connection was an occupant
        """
        members = self._occupants.get(scope)
        if members is None or conn_id not in members:
            return False

        del members[conn_id]
        if not members:
            del self._occupants[scope]

        scopes = self._scopes.get(conn_id)
        if scopes is not None:
            scopes.pop(scope, None)
            if not scopes:
                del self._scopes[conn_id]
        return True

    def occupants(self, scope: Scope) -> List[str]:
        """Current occupants of a scope, in join order"""
        return list(self._occupants.get(scope, ()))

    def occupancy(self, scope: Scope) -> int:
        return len(self._occupants.get(scope, ()))

    def contains(self, scope: Scope, conn_id: str) -> bool:
        return conn_id in self._occupants.get(scope, ())

    def scopes_of(self, conn_id: str) -> List[Scope]:
        return list(self._scopes.get(conn_id, ()))

    def leave_all(self, conn_id: str) -> List[Scope]:
        """
        Remove a connection from every scope it occupies

        Returns:
            Each scope it was removed from, exactly once
        """
        vacated = []
        for scope in self.scopes_of(conn_id):
            if self.leave(scope, conn_id):
                vacated.append(scope)
        return vacated

    def scopes(self, kind: ScopeKind = None) -> Set[Scope]:
        """All non-empty scopes, optionally of one kind"""
        return {s for s in self._occupants if kind is None or s.kind == kind}
