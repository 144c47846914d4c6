"""Base Scheduler — abstract interface for per-tick scheduling passes."""

from abc import ABC, abstractmethod

from pressim.models.state import SystemState
from pressim.sampling.rng import RNG


class BaseScheduler(ABC):
    """Abstract base class for schedulers. Subclasses implement schedule()."""

    @abstractmethod
    def schedule(self, state: SystemState, dt: float, rng: RNG) -> SystemState:
        """Advance the task collection of `state` by one tick and return it.

        `state` is the tick's working copy and may be mutated in place.
        Its metrics are the pre-scheduling figures for this tick.
        """
        ...

    @property
    def name(self) -> str:
        """Human-readable scheduler name for reports."""
        return self.__class__.__name__
