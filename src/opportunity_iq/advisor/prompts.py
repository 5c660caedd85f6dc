"""Loading and rendering of advisor prompt templates."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

PROMPTS_PATH = Path(__file__).resolve().parent / "prompts.yaml"


@dataclass(frozen=True)
class PromptTemplate:
    """One advisor operation's prompt."""

    name: str
    template: str
    json_mode: bool = False
    system: str | None = None
    schema: dict[str, Any] | None = field(default=None, hash=False)

    def render(self, **values: Any) -> str:
        return self.template.format(**values)


@dataclass(frozen=True)
class PromptCatalog:
    default_system: str
    json_mode_system: str
    chat_system: str
    chat_context: str
    chat_no_context: str
    operations: dict[str, PromptTemplate] = field(hash=False)

    def __getitem__(self, name: str) -> PromptTemplate:
        return self.operations[name]

    def system_for(self, prompt: PromptTemplate) -> str:
        """System instruction for an operation, with the JSON rule appended when needed."""
        instruction = prompt.system or self.default_system
        if prompt.json_mode and "JSON" not in instruction:
            instruction = f"{instruction} {self.json_mode_system}"
        return instruction


@lru_cache
def load_prompts(path: Path | None = None) -> PromptCatalog:
    """Load the prompt catalog from YAML."""
    source = path or PROMPTS_PATH
    data = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{source.name}: expected a mapping")

    system = data.get("system")
    operations = data.get("operations")
    if not isinstance(system, dict) or not isinstance(operations, dict):
        raise ValueError(f"{source.name}: 'system' and 'operations' must be mappings")

    templates: dict[str, PromptTemplate] = {}
    for name, spec in operations.items():
        if not isinstance(spec, dict) or not isinstance(spec.get("template"), str):
            raise ValueError(f"{source.name}: operation {name!r} needs a template")
        templates[name] = PromptTemplate(
            name=name,
            template=spec["template"].strip(),
            json_mode=bool(spec.get("json", False)),
            system=spec.get("system"),
            schema=spec.get("schema"),
        )

    return PromptCatalog(
        default_system=system["default"],
        json_mode_system=system["json_mode"],
        chat_system=system["chat"],
        chat_context=system["chat_context"],
        chat_no_context=system["chat_no_context"],
        operations=templates,
    )
