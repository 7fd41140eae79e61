"""
Token-based APNs authentication.

APNs accepts a provider token (ES256 JWT) for 20-60 minutes, so one token is
generated at startup and re-signed on a fixed cadence. The header segment
never changes during a process lifetime; refresh recomputes the claims and
the signature only.
"""
import asyncio
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Protocol

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm
from jwt.utils import base64url_encode

logger = logging.getLogger(__name__)

ALGORITHM = "ES256"


class CredentialError(Exception):
    """Provider token could not be generated."""


class KeyFileError(CredentialError):
    pass


class BadPrivateKeyError(CredentialError):
    pass


class SigningError(CredentialError):
    pass


class Signer(Protocol):
    def sign(self, message: bytes) -> bytes: ...


class ES256KeyFileSigner:
    """
    Signs with the .p8 key at `key_path`. The file is read on every call,
    so a key re-mounted into the container is picked up by the next refresh.
    """

    def __init__(self, key_path: str) -> None:
        self.key_path = key_path
        self._algorithm = ECAlgorithm(ECAlgorithm.SHA256)

    def _load_key(self) -> ec.EllipticCurvePrivateKey:
        try:
            with open(self.key_path, "rb") as f:
                pem = f.read()
        except OSError as e:
            raise KeyFileError(f"Cannot read token key {self.key_path}: {e}") from e

        try:
            key = serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise BadPrivateKeyError(f"Invalid private key in {self.key_path}") from e
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise BadPrivateKeyError(f"{self.key_path} is not an EC private key")
        return key

    def sign(self, message: bytes) -> bytes:
        key = self._load_key()
        try:
            # raw r||s, not DER
            return self._algorithm.sign(message, key)
        except Exception as e:
            raise SigningError(f"ES256 signing failed: {e}") from e


def _encode_segment(data: Dict[str, Any]) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode("utf-8")
    return base64url_encode(raw).decode("ascii")


class CredentialManager:
    def __init__(
        self,
        team_id: str,
        key_id: str,
        signer: Signer,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.team_id = team_id
        self.key_id = key_id
        self._signer = signer
        self._clock = clock
        self._lock = threading.Lock()
        self._header = _encode_segment({"alg": ALGORITHM, "kid": key_id})
        # CredentialError here is fatal: nothing can be delivered without a token
        self._token = self._generate()

    @property
    def header(self) -> str:
        return self._header

    def current(self) -> str:
        with self._lock:
            return self._token

    def refresh(self) -> None:
        """
        Re-signs fresh claims. On error the previous token stays in place
        and the CredentialError goes to the caller.
        """
        token = self._generate()
        with self._lock:
            self._token = token

    def _generate(self) -> str:
        claims = _encode_segment({"iss": self.team_id, "iat": int(self._clock())})
        signing_input = f"{self._header}.{claims}"
        try:
            signature = self._signer.sign(signing_input.encode("ascii"))
        except CredentialError:
            raise
        except Exception as e:
            raise SigningError(f"Signer failed: {e}") from e
        return f"{signing_input}.{base64url_encode(signature).decode('ascii')}"


async def run_refresh_loop(manager: CredentialManager, interval_seconds: float) -> None:
    """Refreshes the token every `interval_seconds` for the lifetime of the process."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            # signer reads the key file; keep it off the event loop
            await asyncio.to_thread(manager.refresh)
            logger.info("APNs auth token refreshed")
        except KeyFileError:
            logger.exception(
                "APNs auth token refresh failed, keeping previous token. "
                "If running in Docker, make sure the private key is mounted into the volume."
            )
        except CredentialError:
            logger.exception("APNs auth token refresh failed, keeping previous token")
        except Exception:
            logger.exception("Unexpected error in auth token refresh loop")
