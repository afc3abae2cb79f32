"""Model identity parsing utilities for telemetry display."""
from __future__ import annotations

import re

_VERSION_TOKEN_PATTERN = re.compile(r"^\d+(?:\.\d+)*$")
_DATE_SUFFIX_PATTERN = re.compile(r"(?:-\d{8}|-\d{4}-\d{2}-\d{2})+$")


def _title_case(value: str) -> str:
    return " ".join(part.capitalize() for part in (value or "").strip().split() if part.strip())


def _provider_label(token: str) -> str:
    lowered = (token or "").strip().lower()
    if lowered == "claude":
        return "Claude"
    if lowered in {"gpt", "openai", "o1", "o3", "o4"}:
        return "OpenAI"
    if lowered == "gemini":
        return "Gemini"
    if lowered:
        return _title_case(lowered)
    return "Unknown"


def normalize_model_name(raw_model: str | None) -> str:
    """Drop a ``provider:`` prefix, keeping the model identifier.

    Example:
      copilot:claude-opus-4.5 -> claude-opus-4.5
    """
    raw = (raw_model or "").strip()
    if ":" in raw:
        raw = raw.rsplit(":", 1)[-1].strip()
    return raw


def canonical_model_name(raw_model: str | None) -> str:
    """Return a canonical identifier with build/date suffixes removed."""
    raw = normalize_model_name(raw_model).lower()
    if not raw:
        return ""
    normalized = re.sub(r"[\s_]+", "-", raw)
    normalized = re.sub(r"-{2,}", "-", normalized).strip("-")
    stripped = _DATE_SUFFIX_PATTERN.sub("", normalized).strip("-")
    return stripped or normalized


def model_display_name(raw_model: str | None) -> str:
    """Human-friendly label such as ``Claude Opus 4.5`` or ``OpenAI GPT 4.1``."""
    canonical = canonical_model_name(raw_model)
    if not canonical:
        return ""

    parts = [part for part in canonical.split("-") if part]
    provider_token = parts[0]
    if provider_token == "gpt":
        # gpt-4.1 / gpt-5-mini: the family is the provider token itself
        family = "GPT"
        rest = parts[1:]
    else:
        family = _title_case(parts[1]) if len(parts) >= 2 and not _VERSION_TOKEN_PATTERN.match(parts[1]) else ""
        rest = parts[2:] if family else parts[1:]

    version_tokens: list[str] = []
    suffix_tokens: list[str] = []
    for token in rest:
        if _VERSION_TOKEN_PATTERN.match(token) and not suffix_tokens:
            version_tokens.append(token)
        else:
            suffix_tokens.append(token)
    version = ".".join(version_tokens[:2])

    pieces = [_provider_label(provider_token), family, version, _title_case(" ".join(suffix_tokens))]
    display = " ".join(piece for piece in pieces if piece).strip()
    return display or normalize_model_name(raw_model)
