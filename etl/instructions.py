# etl/instructions.py
"""
Per-event, per-argument parsing instructions.

Shape of the JSON attachment:
  {"Transfer": {"to": {"isDistinctId": true}, "amount": {"argType": "eth"}}}
"""
from __future__ import annotations

import json
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

ArgType = Literal["eth", "number", "int", "string", "hex", "boolean"]


class ArgInstruction(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    argType: Optional[ArgType] = None
    isDistinctId: bool = False


# eventName -> argName -> rule
InstructionSet = Dict[str, Dict[str, ArgInstruction]]

_adapter = TypeAdapter(InstructionSet)


def parse_instructions(raw) -> InstructionSet:
    """Validate an already-parsed mapping. None means no instructions at all."""
    if raw is None:
        return {}
    try:
        return _adapter.validate_python(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid event parsing instructions: {e}") from e


def load_instructions(text: Optional[str]) -> InstructionSet:
    if text is None or not text.strip():
        return {}
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Event parsing instructions are not valid JSON: {e}") from e
    return parse_instructions(raw)


def rule_for(instructions: InstructionSet, event_name: str, arg_name: str) -> Optional[ArgInstruction]:
    return instructions.get(event_name, {}).get(arg_name)
