# Overview: Chemistry assistant backed by the OpenAI API.

"""
Three request shapes:
- prompt -> markdown (+ web citations): safety sheet, predictive analysis,
  anomaly analysis
- prompt -> schema-constrained JSON: product info lookup, product list
  extraction from a photographed stock sheet
- image + prompt -> image: image edit

Without an API key every call degrades to a fixed French message instead of
failing. Markdown calls embed the message in the returned text; structured
calls raise AssistantError so routes can return it as {"error": ...}.
"""
from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field

import openai
from flask import current_app

from ..models import StockMovement
from ..errors import StockError


GHS_PICTOGRAMS = (
    "ExplodingBomb", "Flame", "FlameOverCircle", "GasCylinder", "Corrosion",
    "SkullAndCrossbones", "HealthHazard", "ExclamationMark", "Environment",
)

ANALYSIS_MOVEMENT_LIMIT = 200

MISSING_KEY_MESSAGE = "La clé API de l'assistant IA n'est pas configurée. L'assistant IA est désactivé."
RATE_LIMITED_MESSAGE = "Trop de requêtes envoyées à l'assistant IA. Veuillez patienter un moment."
UNEXPECTED_RESPONSE_MESSAGE = "L'assistant IA a renvoyé une réponse inattendue. Veuillez réessayer."


class AssistantError(StockError):
    status_code = 502


class AssistantUnavailable(AssistantError):
    status_code = 503


class AssistantRateLimited(AssistantError):
    status_code = 429


@dataclass
class SafetySheet:
    content: str
    sources: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"content": self.content, "sources": self.sources}


def _client() -> openai.OpenAI:
    api_key = current_app.config.get("AI_API_KEY")
    if not api_key:
        raise AssistantUnavailable(MISSING_KEY_MESSAGE)
    return openai.OpenAI(api_key=api_key)


def _text_model() -> str:
    return current_app.config.get("AI_TEXT_MODEL", "gpt-4o-mini")


def _call(func, failure_message: str):
    """Run one API call, mapping SDK failures to AssistantError."""
    try:
        return func()
    except openai.RateLimitError as exc:
        current_app.logger.warning("AI rate limited: %s", exc)
        raise AssistantRateLimited(RATE_LIMITED_MESSAGE) from exc
    except openai.OpenAIError as exc:
        current_app.logger.error("AI call failed: %s", exc)
        raise AssistantError(failure_message) from exc


def _as_markdown_error(exc: AssistantError) -> str:
    return f"**Erreur :** {exc.message}"


# ---------------------------------------------------------------------------
# Markdown responses
# ---------------------------------------------------------------------------

def _citations(response) -> list[dict]:
    sources = []
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for part in getattr(item, "content", None) or []:
            for annotation in getattr(part, "annotations", None) or []:
                if getattr(annotation, "type", None) != "url_citation":
                    continue
                source = {"uri": annotation.url, "title": getattr(annotation, "title", "") or annotation.url}
                if source not in sources:
                    sources.append(source)
    return sources


def generate_safety_sheet(product_name: str, formula: str | None = None) -> SafetySheet:
    prompt = (
        f'Generate a concise, up-to-date safety data sheet for the chemical product: "{product_name}"'
        f"{f' (Formula: {formula})' if formula else ''}.\n"
        "Use the most current information available on the web to ensure accuracy regarding "
        "regulations and safety procedures.\n"
        "The response must be in French.\n"
        "The output should be well-structured markdown.\n"
        "Include the following sections:\n"
        "1. **Identification du produit**: Product name and formula.\n"
        "2. **Identification des dangers**: Main hazards and GHS pictograms (list them by name, "
        "e.g., Flammable, Corrosive).\n"
        "3. **Premiers secours**: Instructions for eye contact, skin contact, inhalation, and ingestion.\n"
        "4. **Manipulation et stockage**: Precautions for safe handling and storage conditions.\n"
        "5. **Équipement de protection individuelle (EPI)**: Recommended personal protective equipment.\n"
    )
    try:
        client = _client()
        response = _call(
            lambda: client.responses.create(
                model=_text_model(),
                input=prompt,
                tools=[{"type": "web_search_preview"}],
            ),
            "Une erreur est survenue lors de la génération de la fiche de sécurité. Veuillez réessayer.",
        )
    except AssistantError as exc:
        return SafetySheet(content=_as_markdown_error(exc))

    return SafetySheet(content=response.output_text or "", sources=_citations(response))


def format_movements(movements: list[StockMovement]) -> str:
    lines = []
    for m in movements[:ANALYSIS_MOVEMENT_LIMIT]:
        day = m.created_at.date().isoformat() if m.created_at else ""
        lines.append(
            f"{day}; {m.product_name}; {m.change_type}; {m.quantity_change:+d}; "
            f"Nouveau Stock: {m.new_stock_level}"
        )
    return "\n".join(lines)


def _analysis(instructions: str, movements: list[StockMovement], failure_message: str) -> str:
    prompt = f"{instructions}\n\nDonnées:\n{format_movements(movements)}\n"
    try:
        client = _client()
        response = _call(
            lambda: client.chat.completions.create(
                model=_text_model(),
                messages=[{"role": "user", "content": prompt}],
            ),
            failure_message,
        )
    except AssistantError as exc:
        return _as_markdown_error(exc)
    return response.choices[0].message.content or ""


def generate_predictive_analysis(movements: list[StockMovement]) -> str:
    return _analysis(
        "En tant qu'expert en gestion d'inventaire, analysez l'historique des mouvements de stock "
        "suivant (format: date; produit; type; changement; nouveau stock).\n"
        "Identifiez 3 produits présentant un risque de rupture de stock dans un futur proche en vous "
        "basant sur leur consommation récente et leur niveau de stock actuel.\n"
        "Pour chaque produit identifié, fournissez une brève explication (1-2 phrases) et une "
        "recommandation concrète.\n"
        "La réponse doit être en français et formatée en markdown. Si les données sont "
        "insuffisantes, indiquez-le.",
        movements,
        "Une erreur est survenue lors de l'analyse prédictive.",
    )


def generate_movement_analysis(movements: list[StockMovement]) -> str:
    return _analysis(
        "En tant qu'analyste de données, analysez l'historique des mouvements de stock suivant "
        "(format: date; produit; type; changement; nouveau stock) pour y déceler des anomalies.\n"
        "Recherchez des schémas inhabituels comme des ajustements de stock très importants et "
        "soudains, une activité à des moments inhabituels, ou des corrections de stock fréquentes "
        "pour un même produit.\n"
        "Listez les anomalies potentielles que vous trouvez avec une brève explication pour chacune.\n"
        "La réponse doit être en français et formatée en markdown. S'il n'y a aucune anomalie "
        "évidente, mentionnez-le.",
        movements,
        "Une erreur est survenue lors de l'analyse des mouvements.",
    )


# ---------------------------------------------------------------------------
# Structured responses
# ---------------------------------------------------------------------------

PRODUCT_INFO_SCHEMA = {
    "type": "object",
    "properties": {
        "formula": {"type": "string", "description": "The chemical formula."},
        "cas": {"type": "string", "description": "The CAS Registry Number."},
        "ghsPictograms": {
            "type": "array",
            "description": "A list of GHS pictogram names.",
            "items": {"type": "string", "enum": list(GHS_PICTOGRAMS)},
        },
    },
    "required": ["formula", "cas", "ghsPictograms"],
    "additionalProperties": False,
}

EXTRACTED_PRODUCTS_SCHEMA = {
    "type": "object",
    "properties": {
        "products": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "code": {"type": "string", "description": "Product code"},
                    "name": {"type": "string", "description": "Product name from Désignation"},
                    "stock": {"type": "number", "description": "Stock quantity"},
                },
                "required": ["code", "name", "stock"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["products"],
    "additionalProperties": False,
}


def _json_completion(messages: list[dict], schema_name: str, schema: dict, failure_message: str, parse_message: str):
    client = _client()
    response = _call(
        lambda: client.chat.completions.create(
            model=_text_model(),
            messages=messages,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema, "strict": True},
            },
        ),
        failure_message,
    )
    raw = (response.choices[0].message.content or "").strip()
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        current_app.logger.error("AI returned non-JSON content for %s: %r", schema_name, raw[:500])
        raise AssistantError(parse_message) from exc


def get_product_info(product_name: str) -> dict:
    """Returns {"formula", "cas", "ghsPictograms"}."""
    prompt = (
        f'Provide chemical information for the product: "{product_name}".\n'
        "Return only a single JSON object matching the provided schema.\n"
        "For ghsPictograms, use one or more of the following standardized names: "
        + ", ".join(f"'{name}'" for name in GHS_PICTOGRAMS) + "."
    )
    data = _json_completion(
        [{"role": "user", "content": prompt}],
        "product_info",
        PRODUCT_INFO_SCHEMA,
        "Une erreur est survenue lors de la communication avec l'assistant IA. Veuillez réessayer.",
        UNEXPECTED_RESPONSE_MESSAGE,
    )
    if not isinstance(data, dict):
        raise AssistantError(UNEXPECTED_RESPONSE_MESSAGE)
    return {
        "formula": str(data.get("formula") or ""),
        "cas": str(data.get("cas") or ""),
        "ghsPictograms": [p for p in data.get("ghsPictograms") or [] if p in GHS_PICTOGRAMS],
    }


def extract_products_from_image(image_base64: str, mime_type: str) -> list[dict]:
    """Read a photographed stock sheet into [{"code", "name", "stock"}]."""
    prompt = (
        "Analyze the provided image, which contains a table of chemical products.\n"
        'Extract the information from the columns "Code", "Désignation", and "Qte en stock".\n'
        '- The "Code" column contains the product code.\n'
        '- The "Désignation" column contains the product name.\n'
        '- The "Qte en stock" column contains the stock quantity. If this column is empty or '
        "contains no number for a row, default the stock quantity to 0.\n"
        "Return the extracted rows in the 'products' array of the JSON schema."
    )
    message = {
        "role": "user",
        "content": [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{image_base64}"}},
        ],
    }
    data = _json_completion(
        [message],
        "extracted_products",
        EXTRACTED_PRODUCTS_SCHEMA,
        "Une erreur est survenue lors de l'extraction des données de l'image. Veuillez réessayer.",
        "L'assistant IA a renvoyé une réponse inattendue. Assurez-vous que l'image est claire.",
    )
    rows = data.get("products") if isinstance(data, dict) else None
    if not isinstance(rows, list):
        raise AssistantError("L'assistant IA a renvoyé une réponse inattendue. Assurez-vous que l'image est claire.")

    products = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            stock = max(int(row.get("stock") or 0), 0)
        except (TypeError, ValueError):
            stock = 0
        products.append({
            "code": str(row.get("code") or "").strip(),
            "name": str(row.get("name") or "").strip(),
            "stock": stock,
        })
    return products


def edit_image(image_base64: str, mime_type: str, prompt: str) -> str:
    """Returns the edited image as base64."""
    try:
        image_bytes = base64.b64decode(image_base64, validate=True)
    except (ValueError, TypeError) as exc:
        raise AssistantError("Image invalide.") from exc

    client = _client()
    extension = (mime_type or "image/png").split("/")[-1]
    response = _call(
        lambda: client.images.edit(
            model=current_app.config.get("AI_IMAGE_MODEL", "gpt-image-1"),
            image=(f"image.{extension}", image_bytes, mime_type),
            prompt=prompt,
        ),
        "Une erreur est survenue lors de l'édition de l'image. Veuillez réessayer.",
    )
    data = getattr(response, "data", None) or []
    if not data or not getattr(data[0], "b64_json", None):
        raise AssistantError("L'IA n'a pas retourné d'image modifiée.")
    return data[0].b64_json
