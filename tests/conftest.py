from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest


class ScriptedCompletions:
    """Stands in for ``client.chat.completions``; replies are chosen by user-prompt marker."""

    def __init__(self, replies: Dict[str, Any]):
        self.replies = replies
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs: Any):
        self.calls.append(kwargs)
        user_prompt = kwargs["messages"][-1]["content"]
        for marker, reply in self.replies.items():
            if marker in user_prompt:
                if isinstance(reply, Exception):
                    raise reply
                return SimpleNamespace(
                    choices=[SimpleNamespace(message=SimpleNamespace(content=reply))]
                )
        raise AssertionError(f"No scripted reply for prompt: {user_prompt}")


class ScriptedClient:
    def __init__(self, replies: Dict[str, Any]):
        self.completions = ScriptedCompletions(replies)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self) -> List[Dict[str, Any]]:
        return self.completions.calls


GRAPHICS_REPLIES: Dict[str, Any] = {
    "ilaç üreten": '```json\n[{"country": "Türkiye", "drug_count": 12}, {"country": "Almanya", "drugCount": 30.0}]\n```',
    "bulunduğu ülkeler": '["Türkiye", "Almanya", "Fransa", "İtalya"]',
    "yıllık": '[{"year": 2020, "production": 1500.5}, {"year": "2021", "production": 1700}]',
    "hasta sayıları": '```\n[{"country": "Türkiye", "patientCount": 250000}]\n```',
    "bilim insanları": json.dumps(
        [
            {
                "name": "Ayşe Yılmaz",
                "institution": "Hacettepe Üniversitesi",
                "email": "ayse.yilmaz@hacettepe.edu.tr",
                "phone": "+90 555 123 4567",
                "country": "Türkiye",
            }
        ],
        ensure_ascii=False,
    ),
    "risk faktörleri": '[{"factor": "Obezite", "percentage": 40}, {"factor": "Genetik", "percentage": 60}]',
    "yayılma hızı": '[{"period": "2023 Q1", "rate": 0}, {"period": "2023 Q2", "rate": 25}, {"period": "2023 Q3", "rate": -3}]',
}

DOCUMENTS_REPLY = (
    "```json\n"
    '{"documents": [{"title": "Diyabet nedir?", "description": "Genel bilgiler", '
    '"link": "https://www.who.int/diabetes", "source": "WHO"}]}\n'
    "```"
)


@pytest.fixture
def scripted_client():
    def _build(replies: Dict[str, Any]) -> ScriptedClient:
        return ScriptedClient(replies)

    return _build


@pytest.fixture
def graphics_replies() -> Dict[str, Any]:
    return dict(GRAPHICS_REPLIES)


@pytest.fixture
def documents_reply() -> str:
    return DOCUMENTS_REPLY
