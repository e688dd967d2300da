"""Server-Sent Events frames sent to the browser."""
from __future__ import annotations
import enum
from dataclasses import dataclass


class FrameKind(enum.Enum):
    DATA = "data"
    DONE = "done"
    ERROR = "error"
    HEARTBEAT = "heartbeat"


def escape_text(text: str) -> str:
    """Replace line breaks with a literal backslash-n so a frame stays on one line."""
    return text.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\\n")


@dataclass(frozen=True)
class TokenFrame:
    kind: FrameKind
    text: str = ""

    @classmethod
    def data(cls, text: str) -> "TokenFrame":
        return cls(FrameKind.DATA, text)

    @classmethod
    def error(cls, message: str) -> "TokenFrame":
        return cls(FrameKind.ERROR, message)

    @classmethod
    def done(cls) -> "TokenFrame":
        return cls(FrameKind.DONE)

    @classmethod
    def heartbeat(cls) -> "TokenFrame":
        return cls(FrameKind.HEARTBEAT)

    @property
    def terminal(self) -> bool:
        return self.kind in (FrameKind.DONE, FrameKind.ERROR)

    def encode(self) -> str:
        if self.kind is FrameKind.DATA:
            return f"data: {escape_text(self.text)}\n\n"
        if self.kind is FrameKind.ERROR:
            return f"data: [provider error: {escape_text(self.text)}]\n\n"
        if self.kind is FrameKind.DONE:
            return "event: done\ndata: {}\n\n"
        return ": keepalive\n\n"
