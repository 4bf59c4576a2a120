"""
AI assistant tests. The OpenAI client is replaced by fakes.
"""

import json
from types import SimpleNamespace

import openai
import pytest

from labstock.services import ai_service
from labstock.services.ai_service import AssistantError, AssistantRateLimited, AssistantUnavailable


class FakeRateLimit(openai.RateLimitError):
    def __init__(self):
        Exception.__init__(self, "Error code: 429")


def _completion(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeClient:
    def __init__(self, content=None, error=None):
        self.calls = []
        self._content = content
        self._error = error
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        self.responses = SimpleNamespace(create=self._respond)
        self.images = SimpleNamespace(edit=self._edit)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self._error:
            raise self._error
        return _completion(self._content)

    def _respond(self, **kwargs):
        self.calls.append(kwargs)
        if self._error:
            raise self._error
        annotation = SimpleNamespace(type="url_citation", url="https://echa.europa.eu/x", title="ECHA")
        part = SimpleNamespace(type="output_text", annotations=[annotation, annotation])
        item = SimpleNamespace(type="message", content=[part])
        return SimpleNamespace(output_text=self._content, output=[item])

    def _edit(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(data=[SimpleNamespace(b64_json="ZWRpdGVk")])


@pytest.fixture
def fake(monkeypatch):
    def install(**kwargs):
        client = FakeClient(**kwargs)
        monkeypatch.setattr(ai_service, "_client", lambda: client)
        return client
    return install


def test_missing_key_degrades(app):
    with app.app_context():
        sheet = ai_service.generate_safety_sheet("Acétone")
        assert sheet.content.startswith("**Erreur :**")
        assert sheet.sources == []

        with pytest.raises(AssistantUnavailable):
            ai_service.get_product_info("Acétone")

        assert ai_service.generate_predictive_analysis([]).startswith("**Erreur :**")


def test_safety_sheet_with_citations(app, fake):
    client = fake(content="# Fiche")
    with app.app_context():
        sheet = ai_service.generate_safety_sheet("Acétone", "C3H6O")
    assert sheet.content == "# Fiche"
    assert sheet.sources == [{"uri": "https://echa.europa.eu/x", "title": "ECHA"}]
    assert client.calls[0]["tools"] == [{"type": "web_search_preview"}]
    assert "C3H6O" in client.calls[0]["input"]


def test_product_info_parses_schema_output(app, fake):
    fake(content=json.dumps({"formula": "C3H6O", "cas": "67-64-1", "ghsPictograms": ["Flame", "Bogus"]}))
    with app.app_context():
        info = ai_service.get_product_info("Acétone")
    assert info == {"formula": "C3H6O", "cas": "67-64-1", "ghsPictograms": ["Flame"]}


def test_unparseable_json(app, fake):
    fake(content="pas du json")
    with app.app_context():
        with pytest.raises(AssistantError) as excinfo:
            ai_service.get_product_info("Acétone")
    assert "réponse inattendue" in excinfo.value.message


def test_rate_limited_message(app, fake):
    fake(error=FakeRateLimit())
    with app.app_context():
        with pytest.raises(AssistantRateLimited) as excinfo:
            ai_service.get_product_info("Acétone")
        assert excinfo.value.message == ai_service.RATE_LIMITED_MESSAGE

        sheet = ai_service.generate_safety_sheet("Acétone")
        assert "Trop de requêtes" in sheet.content


def test_extract_products_normalizes_rows(app, fake):
    fake(content=json.dumps({"products": [
        {"code": " C-1 ", "name": "Acétone", "stock": 4},
        {"code": "C-2", "name": "Éthanol", "stock": -2},
    ]}))
    with app.app_context():
        rows = ai_service.extract_products_from_image("aGVsbG8=", "image/png")
    assert rows == [
        {"code": "C-1", "name": "Acétone", "stock": 4},
        {"code": "C-2", "name": "Éthanol", "stock": 0},
    ]


def test_edit_image_returns_base64(app, fake):
    client = fake()
    with app.app_context():
        assert ai_service.edit_image("aGVsbG8=", "image/png", "fond blanc") == "ZWRpdGVk"
    assert client.calls[0]["image"][1] == b"hello"


def test_product_info_route_without_key(client, db_session, admin_headers):
    resp = client.post("/api/ai/product-info", json={"name": "Acétone"}, headers=admin_headers)
    assert resp.status_code == 503
    assert "clé API" in resp.get_json()["error"]
