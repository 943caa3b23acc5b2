import uuid

import pytest
from openai import OpenAIError

from healthassist_generator import (
    CompletionError,
    SPREAD_RATE_MAX,
    SPREAD_RATE_MIN,
    clean_json_response,
    fetch_countries_with_drug,
    fetch_spread_rate,
    fetch_yearly_production,
    generate_chat_reply,
    generate_documents,
    generate_graphics_data,
)
from graphics_pydantic_validator import ResponseParseError

FALLBACK_PERIODS = ["2023 Q1", "2023 Q2", "2023 Q3", "2023 Q4", "2024 Q1", "2024 Q2"]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ("```\n[1, 2]\n```", "[1, 2]"),
        ('  {"a": 1}  ', '{"a": 1}'),
        ("[1]```", "[1]"),
        ("```json[]", "[]"),
        ("düz metin", "düz metin"),
    ],
)
def test_clean_json_response_strips_fences(raw, expected):
    assert clean_json_response(raw) == expected


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


def test_chat_reply_wraps_model_text(scripted_client):
    client = scripted_client({"": "Bol su için ve bir doktora danışın."})

    message = generate_chat_reply("Grip olunca ne yapmalıyım?", client=client)

    assert message.content == "Bol su için ve bir doktora danışın."
    assert message.sender == "bot"
    assert uuid.UUID(message.id).version == 4

    call = client.calls[0]
    assert call["temperature"] == 0.7
    assert call["max_tokens"] == 500
    assert call["messages"][0]["role"] == "system"
    assert "sağlık asistanısın" in call["messages"][0]["content"]
    assert call["messages"][1] == {"role": "user", "content": "Grip olunca ne yapmalıyım?"}


def test_chat_reply_with_empty_content_returns_empty_text(scripted_client):
    client = scripted_client({"": None})

    assert generate_chat_reply("Merhaba", client=client).content == ""


def test_chat_reply_wraps_sdk_errors(scripted_client):
    client = scripted_client({"": OpenAIError("rate limited")})

    with pytest.raises(CompletionError, match="rate limited"):
        generate_chat_reply("Merhaba", client=client)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def test_documents_success(scripted_client, documents_reply):
    client = scripted_client({"makaleler": documents_reply})

    result = generate_documents("Diyabet", client=client)

    assert result.success is True
    assert result.disease == "Diyabet"
    assert result.error is None
    assert [doc.source for doc in result.documents] == ["WHO"]
    assert result.documents[0].link == "https://www.who.int/diabetes"

    call = client.calls[0]
    assert call["messages"][1]["content"] == "Diyabet hastalığı hakkında makaleler"
    assert call["max_tokens"] == 1000


def test_documents_without_documents_key_is_empty_success(scripted_client):
    client = scripted_client({"makaleler": '{"articles": 3}'})

    result = generate_documents("et", client=client)

    assert result.success is True
    assert result.documents == []


def test_documents_parse_error_reports_payload(scripted_client):
    client = scripted_client({"makaleler": "```json\nbu JSON değil\n```"})

    result = generate_documents("Behçet", client=client)

    assert result.success is False
    assert result.disease == "Behçet"
    assert result.documents is None
    assert result.error.startswith("JSON parsing error: ")
    assert result.error.endswith("\nResponse was: bu JSON değil")


def test_documents_call_failure_reports_error(scripted_client):
    client = scripted_client({"makaleler": OpenAIError("timeout")})

    result = generate_documents("Astım", client=client)

    assert result.success is False
    assert result.disease == "Astım"
    assert result.error == "Error generating documents: timeout"


# ---------------------------------------------------------------------------
# Graphics
# ---------------------------------------------------------------------------


def test_graphics_success_populates_every_category(scripted_client, graphics_replies):
    client = scripted_client(graphics_replies)

    result = generate_graphics_data("Diyabet", client=client)

    assert result.success is True
    assert result.error is None
    assert result.disease == "Diyabet"
    assert [(c.country, c.drugCount) for c in result.drugProducingCountries] == [
        ("Türkiye", 12),
        ("Almanya", 30),
    ]
    assert result.countriesWithDrug == ["Türkiye", "Almanya", "Fransa", "İtalya"]
    assert [(y.year, y.production) for y in result.yearlyProduction] == [("2020", 1500), ("2021", 1700)]
    assert result.patientsByCountry[0].patientCount == 250000
    assert result.scientists[0].email == "ayse.yilmaz@hacettepe.edu.tr"
    assert sum(r.percentage for r in result.riskFactors) == 100
    assert [s.period for s in result.spreadRate] == ["2023 Q1", "2023 Q2", "2023 Q3"]
    assert result.spreadRate[1].rate == 25
    assert all(s.rate > 0 for s in result.spreadRate)

    assert len(client.calls) == 7
    scientist_call = client.calls[4]
    assert scientist_call["temperature"] == 0.9
    assert scientist_call["max_tokens"] == 800
    assert "farklı ve çeşitli" in scientist_call["messages"][1]["content"]


def test_graphics_failure_keeps_categories_fetched_so_far(scripted_client, graphics_replies):
    graphics_replies["hasta sayıları"] = "bozuk yanıt"
    client = scripted_client(graphics_replies)

    result = generate_graphics_data("Grip", client=client)

    assert result.success is False
    assert result.disease == "Grip"
    assert result.error.startswith("Veri çekme hatası: ")
    assert result.drugProducingCountries is not None
    assert result.countriesWithDrug is not None
    assert result.yearlyProduction is not None
    assert result.patientsByCountry is None
    assert result.scientists is None
    assert result.riskFactors is None
    assert result.spreadRate is None
    assert len(client.calls) == 4


def test_graphics_failure_on_first_call(scripted_client, graphics_replies):
    graphics_replies["ilaç üreten"] = OpenAIError("service unavailable")
    client = scripted_client(graphics_replies)

    result = generate_graphics_data("Grip", client=client)

    assert result.success is False
    assert result.error == "Veri çekme hatası: service unavailable"
    assert result.drugProducingCountries is None
    assert len(client.calls) == 1


def test_graphics_spread_rate_failure_uses_fallback(scripted_client, graphics_replies):
    graphics_replies["yayılma hızı"] = OpenAIError("boom")
    client = scripted_client(graphics_replies)

    result = generate_graphics_data("Grip", client=client)

    assert result.success is True
    assert [s.period for s in result.spreadRate] == FALLBACK_PERIODS


@pytest.mark.parametrize("reply", ["[]x", '{"period": "2023 Q1"}', OpenAIError("down")])
def test_spread_rate_fallback_values_are_in_range(scripted_client, reply):
    client = scripted_client({"yayılma hızı": reply})

    rates = fetch_spread_rate("Kızamık", client=client)

    assert [r.period for r in rates] == FALLBACK_PERIODS
    assert all(SPREAD_RATE_MIN <= r.rate <= SPREAD_RATE_MAX for r in rates)


def test_spread_rate_missing_rate_is_rerandomized(scripted_client):
    client = scripted_client({"yayılma hızı": '[{"period": "2024 Q1"}, {"period": "2024 Q2", "rate": 7}]'})

    rates = fetch_spread_rate("Kızamık", client=client)

    assert SPREAD_RATE_MIN <= rates[0].rate <= SPREAD_RATE_MAX
    assert rates[1].rate == 7


def test_countries_with_drug_rejects_non_string_items(scripted_client):
    client = scripted_client({"bulunduğu ülkeler": '[{"country": "Türkiye"}]'})

    with pytest.raises(ResponseParseError):
        fetch_countries_with_drug("Sıtma", client=client)


def test_yearly_production_requires_a_list(scripted_client):
    client = scripted_client({"yıllık": '{"year": "2020", "production": 10}'})

    with pytest.raises(ResponseParseError) as excinfo:
        fetch_yearly_production("Sıtma", client=client)
    assert excinfo.value.payload == '{"year": "2020", "production": 10}'
