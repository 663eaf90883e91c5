"""Text-generation collaborator — prompts, HTTP client and response parsing.

The engine only needs free-text answers to a prompt; anything that implements
``TextGenerator`` can be plugged in. ``HttpTextGenerator`` posts the prompt as
JSON to a configured endpoint.
"""

import re
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from ..contracts import DetectedAnomaly, DetectionContext, UserRole
from ..utils.logging import get_logger

logger = get_logger("ai.text_generation")

MAX_ITEMS = 3
_BULLET_RE = re.compile(r"^\s*(?:[•\-\*]|\d+[.)])\s*")
_HEADING_RE = re.compile(r"^\s*#+\s*")


class TextGenerator(Protocol):
    async def generate(self, prompt: str, user_role: UserRole) -> str:
        ...


@dataclass
class ParsedInsights:
    reasons: list[str] = field(default_factory=list)
    factors: list[str] = field(default_factory=list)


def build_prompt(anomaly: DetectedAnomaly, context: DetectionContext) -> str:
    fields = ", ".join(
        f"{f.field_name}: expected {f.expected_value:g}, got {f.actual_value:g}"
        for f in anomaly.affected_fields
    )
    impact = anomaly.business_impact.category.value if anomaly.business_impact else "UNKNOWN"
    lines = [
        "Analyze this anomaly in a professional-services firm context.",
        "",
        "Anomaly details:",
        f"- Type: {anomaly.type.value}",
        f"- Severity: {anomaly.severity.value}",
        f"- Affected fields: {fields}",
        f"- Business impact: {impact}",
        f"- User role: {context.user_role.value}",
        "",
        "Please provide:",
        "Possible reasons:",
        "- list the likely business reasons for this anomaly",
        "Contributing factors:",
        "- list the contributing factors",
    ]
    return "\n".join(lines)


def _section_for(text: str) -> str:
    lowered = text.lower()
    if "reason" in lowered:
        return "reasons"
    if "factor" in lowered:
        return "factors"
    return "other"


def parse_insights(response: str) -> ParsedInsights:
    """Split a free-text answer into reason and factor lists (max 3 each).

    Lines ending in ``:`` or starting with ``#`` open a section. Bulleted or
    numbered lines are collected into the current section, defaulting to
    reasons until a factors heading appears.
    """
    insights = ParsedInsights()
    current = "reasons"
    for raw_line in response.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        is_bullet = bool(_BULLET_RE.match(line))
        cleaned = _BULLET_RE.sub("", _HEADING_RE.sub("", line)).strip()
        if not cleaned:
            continue
        if cleaned.endswith(":") or line.startswith("#"):
            current = _section_for(cleaned)
            continue
        if not is_bullet:
            continue
        target = insights.factors if current == "factors" else insights.reasons if current == "reasons" else None
        if target is not None and len(target) < MAX_ITEMS and cleaned not in target:
            target.append(cleaned)
    return insights


class HttpTextGenerator:
    """Posts prompts to an HTTP text-generation endpoint."""

    def __init__(self, url: str, timeout: float = 10.0, headers: dict | None = None):
        self._url = url
        self._timeout = timeout
        self._headers = {"Content-Type": "application/json", **(headers or {})}

    async def generate(self, prompt: str, user_role: UserRole) -> str:
        """Return the generated text.

        Raises:
            httpx.HTTPError: On transport failures or non-2xx responses.
        """
        body = {"prompt": prompt, "user_role": user_role.value}
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(self._url, json=body, headers=self._headers)
            response.raise_for_status()
            logger.debug("text_generation_response", url=self._url, status=response.status_code)

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            payload = response.json()
            if isinstance(payload, dict):
                return str(payload.get("response") or payload.get("text") or "")
            return str(payload)
        return response.text
