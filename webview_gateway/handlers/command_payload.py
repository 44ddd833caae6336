from typing import Any, Optional


class MalformedPayloadError(ValueError):
    def __init__(self, field: str, value: Any):
        super().__init__(f"Malformed payload field '{field}': {value!r}")
        self.field = field
        self.value = value


def safe_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        if isinstance(value, bytes):
            value = value.decode()
        return int(value)
    except (ValueError, TypeError):
        return None


def required_int(payload: dict, field: str) -> int:
    value = safe_int(payload.get(field))
    if value is None:
        raise MalformedPayloadError(field, payload.get(field))
    return value


def optional_int(payload: dict, field: str) -> Optional[int]:
    if payload.get(field) is None:
        return None
    return required_int(payload, field)


def required_str(payload: dict, field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str):
        raise MalformedPayloadError(field, value)
    return value


def optional_str(payload: dict, field: str) -> Optional[str]:
    if payload.get(field) is None:
        return None
    return required_str(payload, field)


def optional_mapping(payload: dict, field: str) -> Optional[dict]:
    value = payload.get(field)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise MalformedPayloadError(field, value)
    return value
