from datetime import datetime

from savanna.models.schema_models import GameStateSchema


def minutes_remaining(deadline: datetime | None, now: datetime) -> int | None:
    """Whole minutes left before the deadline, floored at 0."""
    if deadline is None:
        return None
    seconds = (deadline - now).total_seconds()
    return max(0, int(seconds // 60))


class TimerCache:
    """Soft copy of status/deadline so TICK can skip storage in the common case.

    Snapshot reads run outside the command queue and may finish after a newer
    command committed; `version` keeps such a late read from rolling the cache back.
    """

    def __init__(self):
        self.loaded = False
        self.status = "waiting"
        self.deadline: datetime | None = None
        self.minutes_remaining: int | None = None
        self.version = -1

    def refresh_from_state(self, state: GameStateSchema, now: datetime) -> bool:
        """Refill from a freshly read or written game state

        Args:
            state (GameStateSchema): Authoritative state
            now (datetime): Current UTC time

        Returns:
            bool: False if the state is older than what the cache already holds
        """
        if state.version < self.version:
            return False
        self.version = state.version
        self.set(state.status, state.deadline_utc, now)
        return True

    def set(self, status: str, deadline: datetime | None, now: datetime):
        self.loaded = True
        self.status = status
        self.deadline = deadline
        self.minutes_remaining = minutes_remaining(deadline, now)

    def invalidate(self):
        self.loaded = False

    def recompute(self, now: datetime) -> int | None:
        self.minutes_remaining = minutes_remaining(self.deadline, now)
        return self.minutes_remaining

    def is_expired(self, now: datetime) -> bool:
        return self.deadline is not None and now >= self.deadline

    def needs_expiry(self, now: datetime) -> bool:
        return self.status == "running" and self.is_expired(now)
