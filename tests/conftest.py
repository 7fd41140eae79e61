"""Shared test fixtures and factories."""

import time
from pathlib import Path
from typing import List, Optional

import pytest

from generate_keys import generate_key
from lapush.push.apns import DeliveryOutcome
from lapush.push.credentials import CredentialManager
from lapush.push.models import Alert, TimerInterval
from lapush.push.registry import CancellationRegistry, PushTokenRegistry
from lapush.push.scheduler import Scheduler

# =============================================================================
# Factories
# =============================================================================


def make_interval(
    starts_at: float,
    status: str = "work",
    task: str = "Write report",
    current_segment: int = 0,
) -> TimerInterval:
    return TimerInterval(
        status=status,
        task=task,
        starts_at=starts_at,
        current_segment=current_segment,
        alert=Alert(title=f"Time to {status}", body=task, sound="chime.caf"),
    )


class StaticSigner:
    """Signer returning a fixed signature, counting calls."""

    def __init__(self, signature: bytes = b"signature") -> None:
        self.signature = signature
        self.calls = 0

    def sign(self, message: bytes) -> bytes:
        self.calls += 1
        return self.signature + str(self.calls).encode()


class DeliveryCall:
    def __init__(self, push_token, credential, interval, segment_count):
        self.push_token = push_token
        self.credential = credential
        self.interval = interval
        self.segment_count = segment_count
        self.at = time.time()


class RecordingClient:
    """DeliveryClient double that records every attempt."""

    def __init__(self, fail_first: Optional[BaseException] = None, ok: bool = True) -> None:
        self.calls: List[DeliveryCall] = []
        self._fail_first = fail_first
        self._ok = ok

    async def deliver(self, push_token, credential, interval, segment_count):
        self.calls.append(DeliveryCall(push_token, credential, interval, segment_count))
        if self._fail_first is not None:
            exc, self._fail_first = self._fail_first, None
            raise exc
        return DeliveryOutcome(ok=self._ok, status_code=200 if self._ok else 400)

    @property
    def statuses(self) -> List[str]:
        return [c.interval.status for c in self.calls]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def key_path(tmp_path: Path) -> Path:
    """Fresh P-256 key written the way generate_keys.py writes it."""
    path = tmp_path / "AuthKey_TEST.p8"
    generate_key(str(path))
    return path


@pytest.fixture
def signer() -> StaticSigner:
    return StaticSigner()


@pytest.fixture
def credentials(signer: StaticSigner) -> CredentialManager:
    return CredentialManager("TEAM123456", "KEY123456", signer)


@pytest.fixture
def push_tokens() -> PushTokenRegistry:
    return PushTokenRegistry()


@pytest.fixture
def cancellations() -> CancellationRegistry:
    return CancellationRegistry()


@pytest.fixture
def client() -> RecordingClient:
    return RecordingClient()


@pytest.fixture
def scheduler(credentials, push_tokens, cancellations, client) -> Scheduler:
    return Scheduler(
        credentials,
        push_tokens,
        cancellations,
        client,
        due_floor=0.05,
        token_grace=0.1,
    )
