from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ReadErrorKind(StrEnum):
    NOT_FOUND = "NotFound"
    UNREACHABLE = "Unreachable"


class ChainRpcError(Exception):
    """Raised inside the RPC client; readers turn it into a ``ReadError``."""

    def __init__(self, kind: ReadErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_read_error(self) -> ReadError:
        return ReadError(kind=self.kind, message=self.message)


@dataclass(slots=True, frozen=True)
class ReadError:
    kind: ReadErrorKind
    message: str = ""

    @property
    def not_found(self) -> bool:
        return self.kind == ReadErrorKind.NOT_FOUND

    def as_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message}
