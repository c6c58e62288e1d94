# etl/decoder.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from eth_abi import decode as abi_decode
from eth_utils import to_checksum_address

from common.utils import strip_0x, to_hex
from etl.abi import EventInput, InterfaceSchema
from ingestion.models import RawLog


class DecodeError(ValueError):
    pass


@dataclass
class DecodedEvent:
    name: str
    signature: str
    named_args: Dict[str, Any] = field(default_factory=dict)


def _hexstr_to_bytes(s: str) -> bytes:
    h = strip_0x(s or "")
    if len(h) % 2:
        h = "0" + h
    return bytes.fromhex(h) if h else b""


def _normalize(value: Any, inp: EventInput) -> Any:
    """
    Turn eth_abi output into plain JSON-friendly values.
    Integers become hex strings so nothing is lost before an explicit coercion.
    """
    t = inp.type
    if t.endswith("]"):
        elem = EventInput(name="", type=t[: t.rindex("[")], components=inp.components)
        return [_normalize(v, elem) for v in value]
    if t == "tuple":
        if inp.components and all(c.name for c in inp.components):
            return {c.name: _normalize(v, c) for c, v in zip(inp.components, value)}
        return [_normalize(v, c) for c, v in zip(inp.components, value)]
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return to_hex(value)
    if t == "address":
        return to_checksum_address(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _decode_topic(topic: str, inp: EventInput) -> Any:
    if inp.is_reference:
        # only the hash of the value is in the log
        return "0x" + strip_0x(topic).lower().rjust(64, "0")
    (value,) = abi_decode([inp.canonical_type], _hexstr_to_bytes(topic))
    return _normalize(value, inp)


def decode_log(schema: InterfaceSchema, log: RawLog) -> Optional[DecodedEvent]:
    """
    Decode a raw log against the contract interface.

    Returns None when the first topic matches no event or an anonymous one;
    that is filtering, not failure. Malformed topics/data raise DecodeError.
    Only named arguments are returned.
    """
    fragment = schema.get_event(log.topic0)
    if fragment is None or fragment.anonymous:
        return None

    inputs = fragment.inputs
    indexed_pos = [n for n, inp in enumerate(inputs) if inp.indexed]
    data_pos = [n for n, inp in enumerate(inputs) if not inp.indexed]
    topics = list(log.topics[1:])
    if len(topics) != len(indexed_pos):
        raise DecodeError(
            f"{fragment.signature}: expected {len(indexed_pos)} indexed topics, got {len(topics)}"
        )

    values: List[Any] = [None] * len(inputs)
    try:
        for n, topic in zip(indexed_pos, topics):
            values[n] = _decode_topic(topic, inputs[n])
        if data_pos:
            decoded = abi_decode([inputs[n].canonical_type for n in data_pos], _hexstr_to_bytes(log.data))
            for n, raw in zip(data_pos, decoded):
                values[n] = _normalize(raw, inputs[n])
    except Exception as e:
        raise DecodeError(f"{fragment.signature}: cannot decode log: {e}") from e

    named_args: Dict[str, Any] = {}
    for inp, value in zip(inputs, values):
        if inp.name:
            named_args[inp.name] = value

    return DecodedEvent(name=fragment.name, signature=fragment.signature, named_args=named_args)
