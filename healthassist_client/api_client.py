"""HTTP client for interacting with the health assistant gateway API."""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from .config import config


class HealthAssistantAPIClient:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.base_url = (base_url or config.base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else config.timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def chat(self, message: str) -> Dict[str, Any]:
        resp = requests.post(self._url("/api/chat"), json={"message": message}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def chat_history(self, limit: Optional[int] = None) -> Dict[str, Any]:
        params = {"limit": limit} if limit is not None else None
        resp = requests.get(self._url("/api/chat/history"), params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def documents(self, disease: str) -> Dict[str, Any]:
        resp = requests.post(
            self._url("/api/documents"),
            json={"disease": disease},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def graphics(self, disease: str) -> Dict[str, Any]:
        resp = requests.post(
            self._url("/api/graphics"),
            json={"disease": disease},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def health(self) -> Dict[str, Any]:
        resp = requests.get(self._url("/health"), timeout=60)
        resp.raise_for_status()
        return resp.json()
