"""
Frame admission for the live stream.

Only every Nth delivered frame is considered, and a considered frame is only
admitted when nothing is in flight. Dropped frames are never queued.
"""
from dataclasses import dataclass

from .config import FRAME_DECIMATION


@dataclass(frozen=True)
class FrameTicket:
    frame_number: int
    generation: int


class FrameScheduler:
    def __init__(self, decimation=FRAME_DECIMATION):
        if decimation < 1:
            raise ValueError(f"decimation must be >= 1, got {decimation}")
        self.decimation = decimation
        self.generation = 0
        self._in_flight = False

        # Counters
        self.delivered = 0
        self.decimated = 0
        self.dropped_busy = 0
        self.admitted = 0

    @property
    def in_flight(self):
        return self._in_flight

    def offer(self):
        """Return a FrameTicket if the delivered frame is admitted, else None"""
        self.delivered += 1

        if self.delivered % self.decimation != 0:
            self.decimated += 1
            return None

        if self._in_flight:
            self.dropped_busy += 1
            return None

        self._in_flight = True
        self.admitted += 1
        return FrameTicket(frame_number=self.delivered, generation=self.generation)

    def complete(self, ticket):
        """Clear the in-flight flag; True if the ticket is still current"""
        self._in_flight = False
        return ticket.generation == self.generation

    def invalidate(self):
        """Make results of already admitted frames stale"""
        self.generation += 1

    def stats(self):
        return {
            'delivered': self.delivered,
            'decimated': self.decimated,
            'dropped_busy': self.dropped_busy,
            'admitted': self.admitted,
        }
