"""
Photo intake: turns 1-3 product photos into a listing draft via a
vision-capable chat-completions model.

Nothing is stored here; images are forwarded inline as base64 data URLs and
the model's JSON answer is validated before it reaches the caller.
"""
import base64
import json
import logging
from typing import Annotated, Any, Dict, Iterable, List, Optional, Tuple

import httpx
from fastapi import Depends, Request

from config import settings

logger = logging.getLogger(__name__)

MAX_IMAGES = 3
REQUIRED_STRING_FIELDS = ("title", "description", "category", "condition", "storage")

SAFE_SHARING_RULES = [
    "No visibly spoiled, moldy, or foul-smelling food",
    "Chilled foods must stay refrigerated; frozen foods must stay frozen",
    "No home-canned goods or items in compromised packaging",
    "Prepared/open foods must be within safe time/temperature limits",
    "Clearly label common allergens where relevant",
]

RETAKE_NOTE = "RETAKE: please upload a close-up of the expiration date"
MISSING_EXPIRY_WARNING = "Expiry date could not be read; please enter it manually."


class IntakeError(Exception):
    def __init__(self, message: str, status_code: int = 502, **extra: Any):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


def build_prompt() -> str:
    return "\n".join(
        [
            "You are a food-safety intake assistant for a food sharing app.",
            "From 1-3 product photos, extract a STRICT JSON with keys exactly:",
            "{ title, description, category(one of: bread, dairy, produce, canned, beverages, desserts, other),",
            "  condition(sealed|opened), storage(ambient|refrigerated|frozen),",
            "  expiry_date(YYYY-MM-DD or null), allergens[], notes[],",
            "  confidence:{overall, expiry, category} }.",
            "",
            "Rules:",
            f'- If image quality is low or the date is unreadable, set expiry_date: null and add notes: ["{RETAKE_NOTE}"].',
            "- Validate against these Safe-Sharing rules: " + "; ".join(SAFE_SHARING_RULES) + ".",
            '- If a rule might be violated, add notes: ["FLAG: possible unsafe item - <reason>"] and set confidence.overall < 0.6.',
            "",
            "Output requirements:",
            "- Return ONLY a single JSON object conforming to the schema. No markdown, no code fences, no commentary.",
            "- Use lowercase for category, condition, storage, and allergens.",
            "- Use ISO date format YYYY-MM-DD when a date is readable and certain; otherwise null.",
            "- description must be concise (1-2 sentences), neutral, and safe for public display.",
        ]
    )


def to_data_url(content: bytes, content_type: Optional[str]) -> str:
    mime = content_type if content_type and content_type.startswith("image/") else "image/jpeg"
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


def validate_result(content: Any) -> Dict[str, Any]:
    """Parse the model's message content; raise IntakeError rather than guess."""
    if not isinstance(content, str) or not content.strip():
        raise IntakeError("Invalid AI response")
    try:
        parsed = json.loads(content)
    except ValueError:
        raise IntakeError("Failed to parse AI JSON", raw=content)
    if not isinstance(parsed, dict):
        raise IntakeError("AI JSON is not an object", raw=parsed)
    if not all(isinstance(parsed.get(field), str) for field in REQUIRED_STRING_FIELDS):
        raise IntakeError("AI JSON missing required fields", raw=parsed)
    return parsed


def collect_warnings(result: Dict[str, Any]) -> List[str]:
    notes = result.get("notes")
    warnings = [n for n in notes if isinstance(n, str) and n.strip()] if isinstance(notes, list) else []
    if result.get("expiry_date") is None:
        warnings.append(MISSING_EXPIRY_WARNING)
    return warnings


# AI key -> listing form field
PREFILL_FIELDS = {
    "title": "title",
    "description": "description",
    "category": "category",
    "condition": "condition",
    "storage": "storage_type",
    "expiry_date": "expiry_date",
}


def merge_prefill(
    draft: Dict[str, Any], dirty: Iterable[str], result: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Copy AI values into the draft, leaving every field the user already
    edited untouched. A null AI value never overwrites anything.
    """
    dirty = set(dirty)
    merged = dict(draft)
    for source, target in PREFILL_FIELDS.items():
        if target in dirty:
            continue
        value = result.get(source)
        if value is None or value == "":
            continue
        if source == "condition":
            # the model says "opened", the form says "open"
            value = "open" if value == "opened" else value
        merged[target] = value
    return merged


class IntakeClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str],
        model: str = "gpt-4.1-mini",
        base_url: str = "https://api.openai.com/v1",
    ):
        self._client = client
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    async def aclose(self) -> None:
        await self._client.aclose()

    def _payload(self, images: List[Tuple[bytes, Optional[str]]]) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"type": "text", "text": build_prompt()}]
        for content, content_type in images:
            parts.append({"type": "image_url", "image_url": {"url": to_data_url(content, content_type)}})
        return {
            "model": self.model,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": "You only produce strict JSON. No prose."},
                {"role": "user", "content": parts},
            ],
            "temperature": 0.2,
        }

    async def analyze(self, images: List[Tuple[bytes, Optional[str]]]) -> Dict[str, Any]:
        if not images:
            raise IntakeError("No images provided", 400)
        if len(images) > MAX_IMAGES:
            raise IntakeError(f"Maximum {MAX_IMAGES} images allowed", 400)
        if not self.api_key:
            raise IntakeError("OPENAI_API_KEY is not set", 500)

        try:
            resp = await self._client.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=self._payload(images),
            )
        except httpx.TimeoutException:
            logger.warning("Vision model request timed out")
            raise IntakeError("AI request timed out", 504)
        except httpx.HTTPError as exc:
            logger.warning("Vision model request failed: %s", exc)
            raise IntakeError("AI request failed", 502)

        if resp.status_code != 200:
            logger.warning("Vision model returned %s", resp.status_code)
            raise IntakeError("OpenAI error", 502, details=resp.text)

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise IntakeError("Invalid AI response")
        return validate_result(content)


def build_intake_client() -> IntakeClient:
    return IntakeClient(
        httpx.AsyncClient(timeout=settings.intake_timeout),
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
    )


def get_intake_client(request: Request) -> IntakeClient:
    return request.app.state.intake


IntakeDep = Annotated[IntakeClient, Depends(get_intake_client)]
