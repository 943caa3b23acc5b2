#!/usr/bin/env python3
"""Health assistant generation helpers backed by the OpenAI chat completion API."""

from __future__ import annotations

import logging
import random
import uuid
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from healthassist_config import (
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    OPENAI_MAX_RETRIES,
    OPENAI_TIMEOUT,
    PROMPTS,
    completion_settings,
)
from graphics_pydantic_validator import (
    ChatMessage,
    DocumentResponse,
    DrugProducingCountry,
    GraphicsResponse,
    PatientsByCountry,
    ResponseParseError,
    RiskFactor,
    Scientist,
    SpreadRate,
    YearlyProduction,
    parse_documents,
    parse_model_list,
    parse_string_list,
)

logger = logging.getLogger(__name__)

SPREAD_RATE_MIN = 10
SPREAD_RATE_MAX = 49


class CompletionError(RuntimeError):
    """Raised when the chat completion endpoint fails or returns no choices."""


# ---------------------------------------------------------------------------
# Client initialisation
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_openai_client() -> OpenAI:
    if not OPENAI_API_KEY:
        raise RuntimeError(
            "OPENAI_API_KEY is not configured. Export it or set it in the environment before using the assistant endpoints."
        )
    kwargs: Dict[str, Any] = {
        "api_key": OPENAI_API_KEY,
        "timeout": OPENAI_TIMEOUT,
        "max_retries": OPENAI_MAX_RETRIES,
    }
    if OPENAI_BASE_URL:
        kwargs["base_url"] = OPENAI_BASE_URL
    return OpenAI(**kwargs)


def _chat_completion(
    user_prompt: str,
    *,
    system_prompt: str,
    settings: Dict[str, Any],
    client: Optional[Any] = None,
) -> str:
    client = client or _get_openai_client()
    messages: List[Dict[str, str]] = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
    try:
        completion = client.chat.completions.create(
            model=settings["model"],
            messages=messages,
            temperature=settings["temperature"],
            max_tokens=settings["max_tokens"],
        )
    except OpenAIError as exc:
        raise CompletionError(str(exc)) from exc

    if not completion.choices:
        raise CompletionError("Chat completion returned no choices")
    content = getattr(completion.choices[0].message, "content", None)
    return content or ""


def clean_json_response(json_response: str) -> str:
    """Strip a markdown code fence (optionally tagged ``json``) around *json_response*."""
    json_response = json_response.strip()
    if json_response.startswith("```json"):
        json_response = json_response[7:]
    elif json_response.startswith("```"):
        json_response = json_response[3:]

    if json_response.endswith("```"):
        json_response = json_response[:-3]

    return json_response.strip()


def _complete_operation(name: str, client: Optional[Any] = None, **template_args: Any) -> str:
    return _chat_completion(
        PROMPTS.render(f"prompts.{name}.user", **template_args),
        system_prompt=PROMPTS.get(f"prompts.{name}.system", ""),
        settings=completion_settings(name),
        client=client,
    )


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


def generate_chat_reply(user_message: str, *, client: Optional[Any] = None) -> ChatMessage:
    reply = _chat_completion(
        user_message,
        system_prompt=PROMPTS.get("prompts.chat.system", ""),
        settings=completion_settings("chat"),
        client=client,
    )
    return ChatMessage(
        id=str(uuid.uuid4()),
        content=reply,
        sender="bot",
        timestamp=datetime.now(),
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def generate_documents(disease: str, *, client: Optional[Any] = None) -> DocumentResponse:
    try:
        raw = _complete_operation("documents", client=client, disease=disease)
        json_response = clean_json_response(raw)
        try:
            documents = parse_documents(json_response)
        except ResponseParseError as exc:
            logger.warning("Could not parse documents payload for %s: %s", disease, exc)
            return DocumentResponse(
                success=False,
                disease=disease,
                error=f"JSON parsing error: {exc}\nResponse was: {json_response}",
            )
        return DocumentResponse(success=True, disease=disease, documents=documents)
    except Exception as exc:
        logger.exception("Document generation failed for %s", disease)
        return DocumentResponse(
            success=False,
            disease=disease,
            error=f"Error generating documents: {exc}",
        )


# ---------------------------------------------------------------------------
# Graphics categories
# ---------------------------------------------------------------------------


def fetch_drug_producing_countries(disease: str, *, client: Optional[Any] = None) -> List[DrugProducingCountry]:
    raw = _complete_operation("drug_producing_countries", client=client, disease=disease)
    return parse_model_list(clean_json_response(raw), DrugProducingCountry)


def fetch_countries_with_drug(disease: str, *, client: Optional[Any] = None) -> List[str]:
    raw = _complete_operation("countries_with_drug", client=client, disease=disease)
    return parse_string_list(clean_json_response(raw))


def fetch_yearly_production(disease: str, *, client: Optional[Any] = None) -> List[YearlyProduction]:
    raw = _complete_operation("yearly_production", client=client, disease=disease)
    return parse_model_list(clean_json_response(raw), YearlyProduction)


def fetch_patients_by_country(disease: str, *, client: Optional[Any] = None) -> List[PatientsByCountry]:
    raw = _complete_operation("patients_by_country", client=client, disease=disease)
    return parse_model_list(clean_json_response(raw), PatientsByCountry)


def fetch_scientists(disease: str, *, client: Optional[Any] = None) -> List[Scientist]:
    raw = _complete_operation("scientists", client=client, disease=disease)
    return parse_model_list(clean_json_response(raw), Scientist)


def fetch_risk_factors(disease: str, *, client: Optional[Any] = None) -> List[RiskFactor]:
    raw = _complete_operation("risk_factors", client=client, disease=disease)
    return parse_model_list(clean_json_response(raw), RiskFactor)


def _random_spread_rate() -> int:
    return random.randint(SPREAD_RATE_MIN, SPREAD_RATE_MAX)


def fallback_spread_rate() -> List[SpreadRate]:
    periods = PROMPTS.get("prompts.spread_rate.fallback_periods", []) or []
    return [SpreadRate(period=period, rate=_random_spread_rate()) for period in periods]


def fetch_spread_rate(disease: str, *, client: Optional[Any] = None) -> List[SpreadRate]:
    try:
        raw = _complete_operation("spread_rate", client=client, disease=disease)
        spread_rates = parse_model_list(clean_json_response(raw), SpreadRate)
    except Exception as exc:
        logger.warning("Spread rate generation failed for %s, using fallback data: %s", disease, exc)
        return fallback_spread_rate()

    for spread_rate in spread_rates:
        if spread_rate.rate <= 0:
            spread_rate.rate = _random_spread_rate()
    return spread_rates


def generate_graphics_data(disease: str, *, client: Optional[Any] = None) -> GraphicsResponse:
    try:
        response = GraphicsResponse(success=True, disease=disease)
        steps = [
            ("drugProducingCountries", fetch_drug_producing_countries),
            ("countriesWithDrug", fetch_countries_with_drug),
            ("yearlyProduction", fetch_yearly_production),
            ("patientsByCountry", fetch_patients_by_country),
            ("scientists", fetch_scientists),
            ("riskFactors", fetch_risk_factors),
            ("spreadRate", fetch_spread_rate),
        ]
        try:
            for field_name, fetcher in steps:
                setattr(response, field_name, fetcher(disease, client=client))
        except Exception as exc:
            logger.warning("Graphics data fetch for %s stopped at %s: %s", disease, field_name, exc)
            response.success = False
            response.error = f"Veri çekme hatası: {exc}"
        return response
    except Exception as exc:
        logger.exception("Graphics data generation failed for %s", disease)
        return GraphicsResponse(
            success=False,
            disease=disease,
            error=f"Grafik verileri oluşturma hatası: {exc}",
        )


__all__ = [
    "CompletionError",
    "clean_json_response",
    "generate_chat_reply",
    "generate_documents",
    "fetch_drug_producing_countries",
    "fetch_countries_with_drug",
    "fetch_yearly_production",
    "fetch_patients_by_country",
    "fetch_scientists",
    "fetch_risk_factors",
    "fetch_spread_rate",
    "fallback_spread_rate",
    "generate_graphics_data",
]
