"""
Side effects returned by transactional services and run after commit
"""
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Cta:
    label: str
    url: str


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    heading: str
    body_lines: List[str]
    cta: Optional[Cta] = None
    preview_text: Optional[str] = None


@dataclass
class Outcome(Generic[T]):
    """A committed result plus the notifications still to attempt"""
    value: T
    effects: List[EmailMessage] = field(default_factory=list)

    def add(self, message: Optional[EmailMessage]) -> "Outcome[T]":
        if message is not None and message.to:
            self.effects.append(message)
        return self


def outcome(value: Any, *messages: Optional[EmailMessage]) -> Outcome:
    result = Outcome(value)
    for message in messages:
        result.add(message)
    return result
