import threading
from enum import Enum


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class ConnectionStateHolder:
    """Lock-guarded owner of the broker connectivity state.

    The same re-entrant lock is meant to guard every structure whose
    consistency depends on the state (the pending buffer in particular), so
    callers hold ``lock`` across the state read and the buffer mutation that
    follows it.
    """

    def __init__(self, initial: ConnectionState = ConnectionState.DISCONNECTED):
        self._state = initial
        self.lock = threading.RLock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def transition(self, expected: ConnectionState, new: ConnectionState) -> bool:
        """Move to *new* only if the current state is *expected*.

        Returns whether the transition happened.
        """
        with self.lock:
            if self._state is not expected:
                return False
            self._state = new
            return True
