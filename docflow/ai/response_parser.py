import json
from typing import Any

from docflow.ai.exceptions import ProviderError


def parse_json_object(raw: str) -> dict[str, Any]:
    """Parse a model answer into a JSON object, tolerating markdown fences.

    Raises:
        ProviderError: with code 'invalid_response' if the text is not a JSON object.
    """
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        lines = cleaned.splitlines()
        if lines and lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        cleaned = "\n".join(lines)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ProviderError(
            "invalid_response",
            f"Invalid JSON response: {exc}",
            retryable=False,
        ) from exc

    if not isinstance(parsed, dict):
        raise ProviderError(
            "invalid_response",
            "JSON response must be an object",
            retryable=False,
        )
    return parsed
