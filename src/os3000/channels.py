from __future__ import annotations

import enum


class Channel(enum.IntEnum):
    """Trace memory on the instrument, numbered as the protocol expects."""

    DISPLAY1 = 1
    DISPLAY2 = 2
    SAVE1 = 3
    SAVE2 = 4

    @classmethod
    def parse(cls, value: "str | int | Channel") -> "Channel":
        if isinstance(value, Channel):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip()
        if text.isdigit():
            return cls(int(text))
        try:
            return cls[text.upper().replace("-", "").replace("_", "")]
        except KeyError as exc:
            raise ValueError(
                f"Unknown channel '{value}'. Expected 1-4 or one of {[c.name.lower() for c in cls]}"
            ) from exc

    def __str__(self) -> str:
        return self.name.lower()
