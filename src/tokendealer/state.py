from dataclasses import dataclass


@dataclass
class UsageRecord:
    exhausted: bool = False
    reset_at: float | None = None  # only meaningful while exhausted
    inflight: int = 0

    def is_stale(self, now: float) -> bool:
        return self.exhausted and (self.reset_at is None or now >= self.reset_at)

    def as_dict(self) -> dict:
        return {"exhausted": self.exhausted, "reset_at": self.reset_at, "inflight": self.inflight}
