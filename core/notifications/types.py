"""Value objects passed between the dispatcher and the push gateway."""

import enum
from dataclasses import dataclass, field


class JobKind(str, enum.Enum):
    reminder = "reminder"
    milestone = "milestone"
    test = "test"


@dataclass(frozen=True)
class NotificationJob:
    """A single push notification, built and delivered immediately."""

    token: str
    title: str
    body: str
    kind: JobKind
    data: dict[str, str] = field(default_factory=dict)
    user_id: str | None = None
    habit_id: str | None = None


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one gateway call."""

    ok: bool
    message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class DeliveryFailure:
    """One failed (user, habit) evaluation or delivery within a pass."""

    user_id: str
    habit_id: str | None
    error: str


@dataclass
class PassReport:
    """
    Result of one scan pass.

    evaluated counts every (user, habit) pair looked at; sent and failed
    only count pairs whose reminder window matched (or that errored).
    """

    evaluated: int = 0
    sent: int = 0
    failed: int = 0
    failures: list[DeliveryFailure] = field(default_factory=list)
    error: str | None = None

    def record_success(self) -> None:
        self.sent += 1

    def record_failure(self, user_id: str, habit_id: str | None, error: str) -> None:
        self.failed += 1
        self.failures.append(
            DeliveryFailure(user_id=user_id, habit_id=habit_id, error=error)
        )

    def as_dict(self) -> dict:
        return {
            "evaluated": self.evaluated,
            "sent": self.sent,
            "failed": self.failed,
            "failures": [
                {"user_id": f.user_id, "habit_id": f.habit_id, "error": f.error}
                for f in self.failures
            ],
            "error": self.error,
        }
