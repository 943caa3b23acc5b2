"""Response models and parsers for model-generated health data.

The chat completion API returns free text that is *supposed* to be JSON in a
fixed shape. This module owns those shapes as pydantic models, repairs small
key typos the model tends to make (``drug_count`` instead of ``drugCount``)
and turns any decode or validation failure into a single
:class:`ResponseParseError` that callers can translate into a fallback.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from fuzzywuzzy import process  # type: ignore
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from healthassist_config import KEY_MATCH_THRESHOLD

ModelT = TypeVar("ModelT", bound=BaseModel)


class ResponseParseError(ValueError):
    """Raised when a completion payload cannot be decoded into the expected shape."""

    def __init__(self, message: str, payload: str = ""):
        self.payload = payload
        super().__init__(message)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _truncate_number(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"expected a finite number, got {value}")
        return int(value)
    return value


class _ModelOutput(BaseModel):
    # Models occasionally emit numbers where strings are expected (years, phones).
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")


# ---------------------------------------------------------------------------
# Chat and documents
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    id: str
    content: str
    sender: str
    timestamp: datetime


class Document(_ModelOutput):
    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    source: Optional[str] = None


class DocumentResponse(BaseModel):
    success: bool
    disease: Optional[str] = None
    documents: Optional[List[Document]] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Graphics categories
# ---------------------------------------------------------------------------


class DrugProducingCountry(_ModelOutput):
    country: Optional[str] = None
    drugCount: Optional[int] = None

    @field_validator("drugCount", mode="before")
    @classmethod
    def truncate_count(cls, v):
        return _truncate_number(v)


class YearlyProduction(_ModelOutput):
    year: Optional[str] = None
    production: Optional[int] = None

    @field_validator("production", mode="before")
    @classmethod
    def truncate_production(cls, v):
        return _truncate_number(v)


class PatientsByCountry(_ModelOutput):
    country: Optional[str] = None
    patientCount: Optional[int] = None

    @field_validator("patientCount", mode="before")
    @classmethod
    def truncate_count(cls, v):
        return _truncate_number(v)


class Scientist(_ModelOutput):
    name: Optional[str] = None
    institution: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None


class RiskFactor(_ModelOutput):
    factor: Optional[str] = None
    percentage: Optional[float] = None


class SpreadRate(_ModelOutput):
    period: Optional[str] = None
    rate: int = 0

    @field_validator("rate", mode="before")
    @classmethod
    def default_missing_rate(cls, v):
        if v is None:
            return 0
        return _truncate_number(v)


class GraphicsResponse(BaseModel):
    success: bool
    disease: Optional[str] = None
    error: Optional[str] = None
    drugProducingCountries: Optional[List[DrugProducingCountry]] = None
    countriesWithDrug: Optional[List[str]] = None
    yearlyProduction: Optional[List[YearlyProduction]] = None
    patientsByCountry: Optional[List[PatientsByCountry]] = None
    scientists: Optional[List[Scientist]] = None
    riskFactors: Optional[List[RiskFactor]] = None
    spreadRate: Optional[List[SpreadRate]] = None


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    message: str = Field(..., max_length=5000, description="User question")

    @field_validator("message")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("message must not be blank")
        return v


class DiseaseRequest(BaseModel):
    disease: str = Field(..., max_length=200, description="Full or partial disease name")

    @field_validator("disease")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("disease must not be blank")
        return v


# ---------------------------------------------------------------------------
# Key repair and parsing
# ---------------------------------------------------------------------------


def correct_key_typo(key: str, expected_keys: List[str], threshold: int = KEY_MATCH_THRESHOLD) -> str:
    if key in expected_keys or not expected_keys:
        return key
    match = process.extractOne(key, expected_keys)
    if match is None:
        return key
    correct_key, score = match[0], match[1]
    if score > threshold:
        return correct_key
    return key


def correct_json_keys(data: Dict[str, Any], expected_keys: List[str]) -> Dict[str, Any]:
    corrected: Dict[str, Any] = {}
    for key, value in data.items():
        corrected_key = correct_key_typo(key, expected_keys)
        # an exact key wins over a fuzzy duplicate
        if corrected_key in corrected and key != corrected_key:
            continue
        corrected[corrected_key] = value
    return corrected


def _decode(payload: str) -> Any:
    try:
        return json.loads(payload)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ResponseParseError(str(exc), payload) from exc


def _validate_item(item: Any, model: Type[ModelT], payload: str) -> ModelT:
    if isinstance(item, dict):
        item = correct_json_keys(item, list(model.model_fields))
    try:
        return model.model_validate(item)
    except ValidationError as exc:
        raise ResponseParseError(str(exc), payload) from exc


def parse_model_list(payload: str, model: Type[ModelT]) -> List[ModelT]:
    data = _decode(payload)
    if not isinstance(data, list):
        raise ResponseParseError(
            f"Expected a JSON list of {model.__name__}, found {type(data).__name__}", payload
        )
    return [_validate_item(item, model, payload) for item in data]


def parse_string_list(payload: str) -> List[str]:
    data = _decode(payload)
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ResponseParseError("Expected a JSON list of strings", payload)
    return data


def parse_documents(payload: str) -> List[Document]:
    data = _decode(payload)
    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object, found {type(data).__name__}", payload)
    data = correct_json_keys(data, ["documents"])
    docs = data.get("documents")
    if docs is None:
        return []
    if not isinstance(docs, list):
        raise ResponseParseError("'documents' must be a JSON list", payload)
    return [_validate_item(doc, Document, payload) for doc in docs]


__all__ = [
    "ResponseParseError",
    "ChatMessage",
    "Document",
    "DocumentResponse",
    "DrugProducingCountry",
    "YearlyProduction",
    "PatientsByCountry",
    "Scientist",
    "RiskFactor",
    "SpreadRate",
    "GraphicsResponse",
    "ChatRequest",
    "DiseaseRequest",
    "correct_key_typo",
    "correct_json_keys",
    "parse_model_list",
    "parse_string_list",
    "parse_documents",
]
