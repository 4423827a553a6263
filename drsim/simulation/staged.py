"""
Staged (multi-tick) procedures.

The engine never schedules anything itself. A staged procedure is a plain
value holding its own tick counter and cancellation flag; the host calls
the engine's tick function at whatever interval it likes, and tests can
drive it synchronously.
"""

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class RestoreTask:
    """Progress of a backup restore.

    Attributes:
        total_ticks: Ticks needed to reach 100%.
        completed_ticks: Ticks applied so far.
        cancelled: Set when the simulation is reset mid-flight.
        source_region: Backup-storage region being restored from.
    """

    total_ticks: int = 4
    completed_ticks: int = 0
    cancelled: bool = False
    source_region: str | None = None

    def __post_init__(self) -> None:
        if self.total_ticks < 1:
            raise ValueError(f"total_ticks must be >= 1, got {self.total_ticks}")
        if not 0 <= self.completed_ticks <= self.total_ticks:
            raise ValueError(
                f"completed_ticks must be in [0, {self.total_ticks}], got {self.completed_ticks}"
            )

    @property
    def progress_percent(self) -> int:
        return self.completed_ticks * 100 // self.total_ticks

    @property
    def finished(self) -> bool:
        return self.completed_ticks >= self.total_ticks

    @property
    def running(self) -> bool:
        return not self.cancelled and not self.finished

    def advance(self) -> "RestoreTask":
        """Return the task one tick further along.

        Finished or cancelled tasks are returned unchanged, so the terminal
        tick is never applied twice.
        """
        if not self.running:
            return self
        return replace(self, completed_ticks=self.completed_ticks + 1)

    def cancel(self) -> "RestoreTask":
        return replace(self, cancelled=True)
