"""
Active-session registry.

Remembers which client IP addresses have connected so the acceptor can
tell a new client from a returning one.

Membership policy: an address is recorded the first time one of its
connections is accepted and stays recorded for the life of the process.
The first connection from 10.0.0.5 is logged as a new client and counted;
every later connection from 10.0.0.5 is logged as a reconnection and not
counted again. Addresses are never expired or removed.
"""

import threading
from typing import Set


ClientIdentity = str
"""Remote IP address of a connection, port excluded."""


class ActiveSessionRegistry:
    """
    Thread-safe set of client identities.

    The lock guards the set only; it is taken once per accepted connection
    by the acceptor thread and never by session threads.
    """

    def __init__(self):
        self._clients: Set[ClientIdentity] = set()
        self._lock = threading.Lock()

    def check_in(self, identity: ClientIdentity) -> bool:
        """
        Record a connection from identity.

        Returns:
            True if the identity was already present (reconnecting client),
            False if this is the first time it has been seen (new client).
        """
        with self._lock:
            if identity in self._clients:
                return True
            self._clients.add(identity)
            return False

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._clients

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def snapshot(self) -> Set[ClientIdentity]:
        """Copy of the current membership, for logging."""
        with self._lock:
            return set(self._clients)
