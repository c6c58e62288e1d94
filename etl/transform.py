# etl/transform.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from eth_utils import from_wei

from common.utils import strip_0x, to_hex, to_int
from etl.decoder import DecodedEvent
from etl.instructions import InstructionSet, rule_for


class CoercionError(ValueError):
    pass


@dataclass
class NormalizedRecord:
    event_name: str
    timestamp: int
    block_number: int
    block_hash: str
    fields: Dict[str, Any] = field(default_factory=dict)
    distinct_id: Any = None

    def properties(self) -> Dict[str, Any]:
        """Flat property dict handed to sinks."""
        props: Dict[str, Any] = {
            "$timestamp": self.timestamp,
            "blockNumber": self.block_number,
            "blockHash": self.block_hash,
        }
        props.update(self.fields)
        if self.distinct_id is not None:
            props["distinct_id"] = self.distinct_id
        return props


def _as_eth(value) -> str:
    n = to_int(value)
    amount = from_wei(abs(n), "ether")
    s = format(amount, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return "-" + s if n < 0 else s


def _as_number(value) -> int:
    return to_int(value)


def _as_int(value) -> str:
    return str(to_int(value))


def _as_string(value) -> str:
    if isinstance(value, str) and not value.lower().startswith("0x"):
        return value
    raw = bytes(value) if isinstance(value, (bytes, bytearray)) else bytes.fromhex(strip_0x(str(value)))
    if len(raw) != 32:
        raise ValueError(f"expected a 32-byte value, got {len(raw)} bytes")
    if raw[31] != 0:
        raise ValueError("bytes32 string has no null terminator")
    return raw.split(b"\x00", 1)[0].decode("utf-8")


def _as_hex(value) -> str:
    if isinstance(value, bool):
        raise ValueError("booleans have no hex form")
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str) and value[:2].lower() == "0x":
        return "0x" + value[2:]
    return to_hex(to_int(value))


def _as_boolean(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return to_int(value) != 0


COERCERS: Dict[str, Callable[[Any], Any]] = {
    "eth": _as_eth,
    "number": _as_number,
    "int": _as_int,
    "string": _as_string,
    "hex": _as_hex,
    "boolean": _as_boolean,
}


def coerce_value(arg_type: Optional[str], value: Any) -> Any:
    if arg_type is None:
        return value
    try:
        coerce = COERCERS[arg_type]
    except KeyError:
        raise CoercionError(f"unknown argType {arg_type!r}")
    try:
        return coerce(value)
    except CoercionError:
        raise
    except (TypeError, ValueError, UnicodeDecodeError) as e:
        raise CoercionError(f"cannot coerce {value!r} to {arg_type}: {e}") from e


def transform_event(
    event: DecodedEvent,
    instructions: Optional[InstructionSet],
    timestamp: int,
    block_number: int,
    block_hash: str,
) -> NormalizedRecord:
    """
    Apply the parsing instructions to a decoded event.

    Arguments without a rule keep the decoder's value. A rule's argType is
    applied first; isDistinctId then copies the coerced value to distinct_id,
    the last marked argument in decoded order winning.
    """
    record = NormalizedRecord(
        event_name=event.name,
        timestamp=timestamp,
        block_number=block_number,
        block_hash=block_hash,
    )
    instructions = instructions or {}
    for arg_name, value in event.named_args.items():
        rule = rule_for(instructions, event.name, arg_name)
        if rule is not None:
            try:
                value = coerce_value(rule.argType, value)
            except CoercionError as e:
                raise CoercionError(f"{event.name}.{arg_name}: {e}") from e
            if rule.isDistinctId:
                record.distinct_id = value
        record.fields[arg_name] = value
    return record
