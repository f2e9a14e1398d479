"""Tests for prompt template and JSON schema loading."""

import json
from pathlib import Path

import pytest

from docflow.ai.exceptions import PromptConfigError
from docflow.ai.prompt_loader import (
    MAX_SCHEMA_DEPTH,
    load_json_schema,
    load_prompt_template,
    schema_depth,
)

_BUNDLED = (
    "classification",
    "receipt",
    "invoice",
    "voucher",
    "warranty",
    "contract",
    "bank_statement",
    "document",
)


class TestLoadPromptTemplate:
    def test_classification_template_has_hints(self) -> None:
        template = load_prompt_template("classification")
        assert "{filename}" in template
        assert "{extension}" in template
        assert "{category}" in template

    def test_loads_custom_template(self, tmp_path: Path) -> None:
        (tmp_path / "custom_prompt.txt").write_text("Read the receipt")
        assert load_prompt_template("custom", tmp_path) == "Read the receipt"

    def test_missing_file_raises_error(self, tmp_path: Path) -> None:
        with pytest.raises(PromptConfigError, match="Failed to load prompt"):
            load_prompt_template("absent", tmp_path)


class TestLoadJsonSchema:
    @pytest.mark.parametrize("name", _BUNDLED)
    def test_bundled_schemas_stay_shallow(self, name: str) -> None:
        schema = load_json_schema(name)
        assert schema["type"] == "object"
        assert schema_depth(schema) <= MAX_SCHEMA_DEPTH

    def test_rejects_deep_schema(self, tmp_path: Path) -> None:
        deep = {
            "type": "object",
            "properties": {
                "a": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"b": {"type": "array", "items": {"type": "string"}}},
                    },
                }
            },
        }
        (tmp_path / "deep_schema.json").write_text(json.dumps(deep))

        with pytest.raises(PromptConfigError, match="nests 4 levels"):
            load_json_schema("deep", tmp_path)

    def test_rejects_non_object(self, tmp_path: Path) -> None:
        (tmp_path / "list_schema.json").write_text("[]")

        with pytest.raises(PromptConfigError, match="must be an object"):
            load_json_schema("list", tmp_path)

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / "bad_schema.json").write_text("{not json")

        with pytest.raises(PromptConfigError, match="Failed to load JSON schema"):
            load_json_schema("bad", tmp_path)


class TestSchemaDepth:
    def test_scalar(self) -> None:
        assert schema_depth({"type": "string"}) == 0

    def test_flat_object(self) -> None:
        assert schema_depth({"type": "object", "properties": {"x": {"type": "number"}}}) == 1
