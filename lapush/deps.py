from dataclasses import dataclass

from fastapi import Request
from pydantic_settings import BaseSettings, SettingsConfigDict

from lapush.push.credentials import CredentialManager
from lapush.push.registry import CancellationRegistry, PushTokenRegistry
from lapush.push.scheduler import Scheduler

# ====================================
# SETTINGS
# ====================================

REQUIRED_VARS = ("TOPIC", "TEAM_ID", "TOKEN_KEY_PATH", "AUTH_KEY_ID", "APNS_HOST_NAME")


class Settings(BaseSettings):
    # Wczytujemy zmienne środowiskowe z pliku .env
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # APNs / dostawca tokenu
    TOPIC: str
    TEAM_ID: str
    TOKEN_KEY_PATH: str
    AUTH_KEY_ID: str
    APNS_HOST_NAME: str

    # serwer
    HOST: str = "127.0.0.1"
    PORT: int = 9797

    # harmonogram i odświeżanie tokenu
    AUTH_TOKEN_REFRESH_SECONDS: int = 60 * 50  # Apple akceptuje token 20-60 minut
    DUE_FLOOR_SECONDS: float = 1.0
    PUSH_TOKEN_GRACE_SECONDS: float = 4.0
    APNS_TIMEOUT_SECONDS: float = 20.0

    # test obciążeniowy: nie wysyłamy nic do APNs
    SIMULATE_DELIVERY: bool = False

    LOG_LEVEL: str = "INFO"


# Zależność: singleton ustawień

def get_settings() -> Settings:
    return Settings()

# ====================================
# PROCESS STATE
# ====================================

@dataclass
class PushState:
    credentials: CredentialManager
    push_tokens: PushTokenRegistry
    cancellations: CancellationRegistry
    scheduler: Scheduler


def get_push_state(request: Request) -> PushState:
    return request.app.state.push
