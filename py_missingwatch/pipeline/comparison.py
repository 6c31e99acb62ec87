"""Remote face-vs-reference comparison through a multimodal chat model.

The model is reached through the OpenAI SDK, so any OpenAI-compatible
gateway works (set `VISION_API_BASE_URL`). Configure with:
  VISION_API_KEY (or OPENAI_API_KEY)
  VISION_API_BASE_URL   e.g. https://ai.gateway.example/v1
  VISION_MODEL          default google/gemini-2.5-flash
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from py_missingwatch.errors import ComparisonError, ComparisonParseError

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "google/gemini-2.5-flash"
_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = """You are an expert person recognition system specialised in identifying missing persons from surveillance footage. Compare a reference photo and physical description of a missing person with a face cropped from CCTV footage.

Analyse BOTH facial features AND physical appearance.

FACIAL FEATURES:
- overall face shape (oval, round, square, heart-shaped)
- eye spacing and general shape
- nose structure (bridge and tip)
- mouth and lip proportions
- forehead height and hairline pattern
- jawline and chin shape
- permanent distinctive features (moles, scars, birthmarks)

PHYSICAL APPEARANCE:
- body build (slim, average, athletic, heavy)
- approximate height if a reference is visible
- hair colour and style
- clothing colours and type compared to the last known clothing
- distinctive features mentioned in the description (glasses, tattoos, scars)

MATCHING RULES:
1. A face match above 60% confidence alone is a potential match.
2. A face match plus two or more matching physical attributes raises confidence by 15%.
3. Clothing plus build can indicate a potential match even with lower face confidence.
4. Do not penalise lighting, angle or image quality.
5. Prefer flagging for human review over missing a person.

Respond with ONLY a JSON object (no markdown):
{"is_match": boolean, "confidence": number 0-100, "face_similarity": number 0-100, "appearance_match": number 0-100, "reasoning": "brief explanation of what matched", "analysis_details": {"facial_features": {}, "physical_attributes": {}, "match_quality": "high|medium|low", "visibility_notes": "..."}}"""


@dataclass
class ComparisonResult:
    """Verdict returned by the comparison model for one face/person pair."""

    is_match: bool
    confidence: float
    reasoning: str = ""
    face_similarity: Optional[float] = None
    appearance_match: Optional[float] = None
    analysis_details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_match": self.is_match,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "face_similarity": self.face_similarity,
            "appearance_match": self.appearance_match,
            "analysis_details": self.analysis_details,
        }


def _clamp_pct(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, min(100.0, number))


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return bool(value)


def parse_verdict(content: Optional[str]) -> ComparisonResult:
    """Pull the JSON verdict out of a model reply.

    Models sometimes wrap the object in prose or code fences, so the outermost
    ``{...}`` span is parsed.
    """
    if not content:
        raise ComparisonParseError("Empty response from comparison model")
    match = _JSON_BLOCK_RE.search(content)
    if not match:
        raise ComparisonParseError(f"No JSON object in model reply: {content[:200]!r}")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ComparisonParseError(f"Invalid JSON in model reply: {exc}") from exc
    if not isinstance(payload, dict):
        raise ComparisonParseError("Model reply JSON is not an object")
    confidence = _clamp_pct(payload.get("confidence"))
    if confidence is None:
        raise ComparisonParseError("Model reply is missing a numeric confidence")
    details = payload.get("analysis_details")
    return ComparisonResult(
        is_match=_as_bool(payload.get("is_match", False)),
        confidence=confidence,
        reasoning=str(payload.get("reasoning") or ""),
        face_similarity=_clamp_pct(payload.get("face_similarity")),
        appearance_match=_clamp_pct(payload.get("appearance_match")),
        analysis_details=details if isinstance(details, dict) else {},
    )


def describe_appearance(person: Mapping[str, Any]) -> str:
    """Render the stored physical descriptors as prompt context."""
    lines: List[str] = []
    if person.get("height_cm"):
        lines.append(f"Height: approximately {person['height_cm']}cm")
    if person.get("build"):
        lines.append(f"Build: {person['build']}")
    if person.get("hair_color"):
        lines.append(f"Hair color: {person['hair_color']}")
    if person.get("clothing_description"):
        lines.append(f"Last known clothing: {person['clothing_description']}")
    if person.get("distinctive_features"):
        lines.append(f"Distinctive features: {person['distinctive_features']}")
    if not lines:
        return ""
    return "\n\nKnown physical attributes:\n" + "\n".join(lines)


def build_messages(
    person: Mapping[str, Any],
    face_image_b64: str,
    reference_url: str,
    face_index: int = 1,
    total_faces: int = 1,
) -> List[Dict[str, Any]]:
    if total_faces > 0:
        subject = f"The second is face {face_index} of {total_faces} detected in CCTV footage."
    else:
        # No face was detected, so the whole frame is sent instead of a crop.
        subject = "The second is a frame from CCTV footage."
    text = (
        f"Compare these two images. The first is a missing person named {person.get('name')}, "
        f"age {person.get('age')}.{describe_appearance(person)}\n\n"
        f"{subject} "
        "Determine if they could be the same person by analysing BOTH facial features AND physical appearance."
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": reference_url}},
                {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{face_image_b64}"}},
            ],
        },
    ]


def _get_openai_client(api_key: Optional[str], base_url: Optional[str], timeout_s: float):
    """Get an OpenAI SDK client for the comparison gateway."""
    api_key = api_key or os.environ.get("VISION_API_KEY") or os.environ.get("OPENAI_API_KEY")
    if not api_key:
        raise ComparisonError(
            "VISION_API_KEY (or OPENAI_API_KEY) environment variable is required for face comparison."
        )
    from openai import OpenAI

    base_url = base_url or os.environ.get("VISION_API_BASE_URL") or None
    return OpenAI(api_key=api_key, base_url=base_url, timeout=timeout_s)


class ComparisonClient:
    """Sends one reference/face pair per call to the multimodal model."""

    def __init__(
        self,
        client: Any = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 60.0,
    ):
        self.model = model or os.environ.get("VISION_MODEL", DEFAULT_MODEL)
        self._client = client
        self._api_key = api_key
        self._base_url = base_url
        self._timeout_s = timeout_s

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = _get_openai_client(self._api_key, self._base_url, self._timeout_s)
        return self._client

    def compare(
        self,
        person: Mapping[str, Any],
        face_image_b64: str,
        reference_url: str,
        face_index: int = 1,
        total_faces: int = 1,
    ) -> ComparisonResult:
        messages = build_messages(person, face_image_b64, reference_url, face_index, total_faces)
        try:
            response = self.client.chat.completions.create(model=self.model, messages=messages)
        except ComparisonError:
            raise
        except Exception as exc:
            raise ComparisonError(f"Comparison request failed for {person.get('name')}: {exc}") from exc
        content = None
        if response.choices:
            content = response.choices[0].message.content
        LOGGER.debug("Model reply for %s: %s", person.get("name"), content)
        return parse_verdict(content)


ReferenceResolver = Callable[[Mapping[str, Any]], str]
