import asyncio
import logging
import threading
from typing import Dict, Optional

from lapush.utils import short_token

logger = logging.getLogger(__name__)


class PushTokenRegistry:
    """device_id -> push token. Last write wins, entries are never removed."""

    def __init__(self) -> None:
        self._tokens: Dict[str, str] = {}
        self._lock = threading.Lock()

    def update(self, device_id: str, push_token: str) -> None:
        with self._lock:
            self._tokens[device_id] = push_token
            size = len(self._tokens)
        logger.debug(
            "push token updated %s -> %s (registry size %d)",
            short_token(device_id),
            short_token(push_token),
            size,
        )

    def get(self, device_id: str) -> Optional[str]:
        with self._lock:
            return self._tokens.get(device_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


class CancellationHandle:
    """
    Single-slot cancel signal for one schedule. Signalling twice is the
    same as signalling once.
    """

    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"<CancellationHandle {short_token(self.device_id)} {state}>"


class CancellationRegistry:
    """device_id -> handle of the one schedule currently running for it."""

    def __init__(self) -> None:
        self._handles: Dict[str, CancellationHandle] = {}
        self._lock = threading.Lock()

    def register(self, device_id: str) -> CancellationHandle:
        """
        Installs a fresh handle for the device. An existing handle is
        signalled inside the same critical section, so no other register
        or cancel for the device can slip in between.
        """
        handle = CancellationHandle(device_id)
        with self._lock:
            previous = self._handles.get(device_id)
            if previous is not None:
                previous.cancel()
            self._handles[device_id] = handle
        if previous is not None:
            logger.info("superseded running schedule for %s", short_token(device_id))
        return handle

    def cancel(self, device_id: str) -> bool:
        with self._lock:
            handle = self._handles.pop(device_id, None)
            if handle is not None:
                handle.cancel()
        return handle is not None

    def remove_if_current(self, device_id: str, handle: CancellationHandle) -> bool:
        with self._lock:
            if self._handles.get(device_id) is handle:
                del self._handles[device_id]
                return True
        return False

    def get(self, device_id: str) -> Optional[CancellationHandle]:
        with self._lock:
            return self._handles.get(device_id)

    def __contains__(self, device_id: object) -> bool:
        with self._lock:
            return device_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
