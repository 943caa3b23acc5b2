"""Configuration helpers for the gateway API client."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = os.getenv("HEALTHASSIST_BASE_URL", "http://localhost:8080")
    timeout: float = float(os.getenv("HEALTHASSIST_CLIENT_TIMEOUT", "120"))


config = ClientConfig()
