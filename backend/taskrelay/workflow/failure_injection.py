from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import StrEnum


class FailureMode(StrEnum):
    ABORT = "abort"
    CRASH = "crash"


class InjectedFailure(RuntimeError):
    def __init__(self, mode: FailureMode, point: str, invocation: int) -> None:
        super().__init__(f"Injected {mode.value} at '{point}' on call #{invocation}.")
        self.mode = mode
        self.point = point
        self.invocation = invocation


class InjectedAbortError(InjectedFailure):
    """Stands in for a caller that gives up on a mutation halfway through."""


class InjectedCrashError(InjectedFailure):
    """Stands in for the process dying between two writes of one mutation."""


_ERROR_BY_MODE: dict[FailureMode, type[InjectedFailure]] = {
    FailureMode.ABORT: InjectedAbortError,
    FailureMode.CRASH: InjectedCrashError,
}


@dataclass(slots=True)
class FailureInjectionRule:
    """Fire ``mode`` on the ``at_invocation``-th hit of ``point``, at most ``repeat`` times."""

    mode: FailureMode
    point: str
    at_invocation: int = 1
    repeat: int = 1

    def should_inject(self, *, point: str, invocation: int) -> bool:
        armed = self.repeat > 0 and self.point == point and self.at_invocation == invocation
        if armed:
            self.repeat -= 1
        return armed


class FailureInjectorStub:
    """Counts hits per named point and raises when a rule matches.

    Wired into ``TaskWorkflowService`` by atomicity tests; production code passes no injector.
    """

    def __init__(self, rules: list[FailureInjectionRule] | None = None) -> None:
        self._rules = list(rules or [])
        self._hits: Counter[str] = Counter()

    def inject(self, *, point: str) -> None:
        self._hits[point] += 1
        invocation = self._hits[point]
        fired = next(
            (rule for rule in self._rules if rule.should_inject(point=point, invocation=invocation)),
            None,
        )
        if fired is not None:
            raise _ERROR_BY_MODE[fired.mode](fired.mode, point, invocation)

    def invocation_count(self, *, point: str) -> int:
        return self._hits[point]
