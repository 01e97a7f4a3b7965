import json
from typing import Any, Mapping


def serialize_payload(payload: Mapping[str, Any]) -> bytes:
    """
    Encode a payload as canonical JSON bytes.

    Keys are sorted at every level and separators carry no whitespace, so two
    equal mappings always produce identical bytes regardless of insertion
    order. Downstream idempotent consumers rely on this.
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
        default=str,
    ).encode("utf-8")


def deserialize_payload(value: bytes) -> Any:
    return json.loads(value.decode("utf-8"))
