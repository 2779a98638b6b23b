from __future__ import annotations

from dataclasses import dataclass

from taskrelay.workflow.errors import ValidationFailure


def normalize_email(value: str | None, *, field: str = "email") -> str:
    normalized = value.strip() if value is not None else ""
    if not normalized:
        raise ValidationFailure(f"{field} must not be blank.")
    return normalized


@dataclass(frozen=True, slots=True)
class ActorContext:
    """Identity of the user on whose behalf a workflow operation runs.

    The email is asserted by the caller (the front end after its own login
    flow); nothing here verifies it.
    """

    email: str
    trace_id: str | None = None

    @classmethod
    def for_email(cls, email: str | None, *, trace_id: str | None = None) -> ActorContext:
        return cls(email=normalize_email(email, field="actor email"), trace_id=trace_id)
