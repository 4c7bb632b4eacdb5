from __future__ import annotations

import enum
from dataclasses import dataclass


class Visibility(str, enum.Enum):
    public = "public"
    home = "home"
    followers = "followers"
    specified = "specified"

    @classmethod
    def parse(cls, value: "Visibility | str") -> "Visibility":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(item.value for item in cls)
            raise ValueError(f"unknown visibility {value!r}; expected one of: {allowed}") from exc


@dataclass(frozen=True)
class Note:
    text: str
    visibility: Visibility = Visibility.public

    def __post_init__(self) -> None:
        if not isinstance(self.text, str) or not self.text.strip():
            raise ValueError("note text must be a non-empty string")
        object.__setattr__(self, "visibility", Visibility.parse(self.visibility))
