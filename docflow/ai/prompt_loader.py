import json
from pathlib import Path
from typing import Any

from docflow.ai.exceptions import PromptConfigError

_DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"

MAX_SCHEMA_DEPTH = 3


def load_prompt_template(name: str, prompt_dir: Path | None = None) -> str:
    """Load a prompt template bundled as ``<name>_prompt.txt``.

    Raises:
        PromptConfigError: if the file cannot be read.
    """
    path = (prompt_dir or _DEFAULT_PROMPT_DIR) / f"{name}_prompt.txt"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PromptConfigError(f"Failed to load prompt template '{name}': {exc}") from exc


def load_json_schema(name: str, prompt_dir: Path | None = None) -> dict[str, Any]:
    """Load and check a response schema bundled as ``<name>_schema.json``.

    Providers reject deeply nested response schemas, so anything deeper than
    MAX_SCHEMA_DEPTH container levels is refused at load time.

    Raises:
        PromptConfigError: if the file is unreadable, not an object, or too deep.
    """
    path = (prompt_dir or _DEFAULT_PROMPT_DIR) / f"{name}_schema.json"
    try:
        schema = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise PromptConfigError(f"Failed to load JSON schema '{name}': {exc}") from exc
    if not isinstance(schema, dict):
        raise PromptConfigError(f"JSON schema '{name}' must be an object")
    depth = schema_depth(schema)
    if depth > MAX_SCHEMA_DEPTH:
        raise PromptConfigError(
            f"JSON schema '{name}' nests {depth} levels (max {MAX_SCHEMA_DEPTH})"
        )
    return schema


def schema_depth(node: Any) -> int:
    """Count nested object/array levels of a JSON schema node."""
    if not isinstance(node, dict):
        return 0
    node_type = node.get("type")
    if node_type == "object":
        children = node.get("properties") or {}
        return 1 + max((schema_depth(child) for child in children.values()), default=0)
    if node_type == "array":
        return 1 + schema_depth(node.get("items"))
    return 0
