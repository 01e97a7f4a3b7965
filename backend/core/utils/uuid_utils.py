"""
UUIDv7 helpers. Event IDs are time-ordered so consumers and logs sort them by creation.
"""
import os
import time
import uuid
from typing import Union


def uuid7() -> uuid.UUID:
    """
    Generate a UUIDv7: 48-bit Unix millisecond timestamp, version 0111,
    variant 10, remaining bits random.
    """
    timestamp_ms = int(time.time() * 1000)
    uuid_bytes = bytearray(timestamp_ms.to_bytes(6, byteorder='big') + os.urandom(10))
    uuid_bytes[6] = (uuid_bytes[6] & 0x0f) | 0x70
    uuid_bytes[8] = (uuid_bytes[8] & 0x3f) | 0x80
    return uuid.UUID(bytes=bytes(uuid_bytes))


def uuid7_str() -> str:
    """Generate UUIDv7 as string"""
    return str(uuid7())


def extract_timestamp_from_uuid7(uuid_obj: Union[str, uuid.UUID]) -> int:
    """
    Milliseconds since the Unix epoch encoded in a UUIDv7.
    Returns 0 if the value is not a UUIDv7.
    """
    if isinstance(uuid_obj, str):
        try:
            uuid_obj = uuid.UUID(uuid_obj)
        except ValueError:
            return 0
    if uuid_obj.version != 7:
        return 0
    return int.from_bytes(uuid_obj.bytes[:6], byteorder='big')
