"""Tagged value type for loosely-shaped service responses."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List
import json

ABSENT = "absent"
UNPARSEABLE = "unparseable"
OBJECT = "object"
LIST = "list"
SCALAR = "scalar"


@dataclass(frozen=True)
class Payload:
    kind: str
    value: Any = None

    @classmethod
    def absent(cls) -> "Payload":
        return cls(ABSENT)

    @classmethod
    def unparseable(cls, raw: Any = None) -> "Payload":
        return cls(UNPARSEABLE, raw)

    @classmethod
    def of(cls, value: Any) -> "Payload":
        """Wrap an already-decoded JSON value."""
        if value is None:
            return cls.absent()
        if isinstance(value, dict):
            return cls(OBJECT, value)
        if isinstance(value, list):
            return cls(LIST, value)
        return cls(SCALAR, value)

    @classmethod
    def parse(cls, text: str | bytes | None) -> "Payload":
        if text is None:
            return cls.absent()
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError:
                return cls.unparseable(text)
        if not text.strip():
            return cls.absent()
        try:
            return cls.of(json.loads(text))
        except (json.JSONDecodeError, ValueError):
            return cls.unparseable(text)

    @property
    def is_present(self) -> bool:
        return self.kind not in (ABSENT, UNPARSEABLE)

    @property
    def is_object(self) -> bool:
        return self.kind == OBJECT

    def is_empty_object(self) -> bool:
        return self.kind == OBJECT and not self.value

    def field_count(self) -> int:
        if self.kind != OBJECT:
            return 0
        return len(self.value)

    def keys(self) -> List[str]:
        if self.kind != OBJECT:
            return []
        return [str(key) for key in self.value.keys()]

    def has_only_keys_from(self, allowed: Iterable[str]) -> bool:
        """True when every key (case-insensitive) is in ``allowed``."""
        if self.kind != OBJECT:
            return False
        allowed_set = {item.lower() for item in allowed}
        return all(key.lower() in allowed_set for key in self.keys())

    def empty_list_fields(self, names: Iterable[str]) -> List[str]:
        if self.kind != OBJECT:
            return []
        return [name for name in names if isinstance(self.value.get(name), list) and not self.value.get(name)]

    def to_json(self) -> Any:
        if self.kind in (OBJECT, LIST, SCALAR):
            return self.value
        return None
