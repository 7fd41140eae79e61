import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from .models import TimerInterval
from lapush.utils import short_token

logger = logging.getLogger(__name__)

DISMISSAL_DELAY_SECONDS = 5 * 60


@dataclass
class DeliveryOutcome:
    ok: bool
    status_code: Optional[int] = None
    apns_id: str = ""
    apns_unique_id: str = ""
    body: str = ""
    error: Optional[str] = None


class DeliveryClient(Protocol):
    async def deliver(
        self,
        push_token: str,
        credential: str,
        interval: TimerInterval,
        segment_count: int,
    ) -> DeliveryOutcome: ...


def build_payload(interval: TimerInterval, segment_count: int, now: int) -> Dict[str, Any]:
    return {
        "aps": {
            "timestamp": now,
            "event": "update",
            "dismissal-date": now + DISMISSAL_DELAY_SECONDS,
            "content-state": {
                "status": interval.status,
                "task": interval.task,
                "currentSegment": interval.current_segment,
                "segmentCount": segment_count,
                "startTimestamp": interval.starts_at,
                "timeRemaining": 0,
                "isFullSegment": True,
                "isPaused": False,
            },
            "alert": {
                "title": interval.alert.title,
                "body": interval.alert.body,
                "sound": interval.alert.sound,
            },
        }
    }


def build_headers(topic: str, credential: str, content_length: int) -> Dict[str, str]:
    return {
        "apns-topic": f"{topic}.push-type.liveactivity",
        "apns-push-type": "liveactivity",
        "apns-priority": "10",
        "authorization": f"bearer {credential}",
        "content-type": "application/json",
        "content-length": str(content_length),
    }


class APNsClient:
    """Live activity updates over HTTP/2 to the APNs provider API."""

    def __init__(self, host: str, topic: str, http_client: httpx.AsyncClient) -> None:
        self.host = host
        self.topic = topic
        self._http = http_client

    async def deliver(
        self,
        push_token: str,
        credential: str,
        interval: TimerInterval,
        segment_count: int,
    ) -> DeliveryOutcome:
        url = f"https://{self.host}/3/device/{push_token}"
        body = json.dumps(build_payload(interval, segment_count, int(time.time())))
        content = body.encode("utf-8")
        headers = build_headers(self.topic, credential, len(content))
        logger.debug("APNs body for %s: %s", short_token(push_token), body)

        try:
            resp = await self._http.post(url, headers=headers, content=content)
        except httpx.HTTPError as e:
            logger.error("APNs error for %s: %s", short_token(push_token), e)
            return DeliveryOutcome(ok=False, error=str(e))

        outcome = DeliveryOutcome(
            ok=resp.is_success,
            status_code=resp.status_code,
            apns_id=resp.headers.get("apns-id", ""),
            apns_unique_id=resp.headers.get("apns-unique-id", ""),
            body=resp.text,
        )
        log = logger.info if outcome.ok else logger.warning
        log(
            "APNs response: status=%s, apns-id=%s, apns-unique-id=%s %s",
            outcome.status_code,
            outcome.apns_id,
            outcome.apns_unique_id,
            outcome.body,
        )
        return outcome


class SimulatedClient:
    """Stand-in for load tests: no network, fixed latency, always succeeds."""

    def __init__(self, latency: float = 1.0) -> None:
        self.latency = latency

    async def deliver(
        self,
        push_token: str,
        credential: str,
        interval: TimerInterval,
        segment_count: int,
    ) -> DeliveryOutcome:
        logger.info("Simulated request to APNs for %s (SIMULATE_DELIVERY=true)", short_token(push_token))
        await asyncio.sleep(self.latency)
        return DeliveryOutcome(ok=True, status_code=200)


def build_delivery_client(settings, http_client: httpx.AsyncClient) -> DeliveryClient:
    if settings.SIMULATE_DELIVERY:
        return SimulatedClient()
    return APNsClient(settings.APNS_HOST_NAME, settings.TOPIC, http_client)
