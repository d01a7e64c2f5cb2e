"""
Live display smoothing. Kept apart from the benchmark, which uses a plain mean.
"""
from dataclasses import dataclass

from .config import SMOOTHING


@dataclass(frozen=True)
class LiveUpdate:
    label: str
    confidence_text: str
    avg_inference_ms: float


def format_confidence(confidence):
    return f"{confidence * 100:.1f}%"


class LiveStats:
    def __init__(self, smoothing=SMOOTHING):
        self.smoothing = smoothing
        self.avg_inference_ms = 0.0

    def reset(self):
        self.avg_inference_ms = 0.0

    def update(self, result):
        """Blend a new result into the moving average"""
        inference_ms = float(result.inference_time_ms)
        if self.avg_inference_ms == 0.0:
            self.avg_inference_ms = inference_ms
        else:
            self.avg_inference_ms = (self.avg_inference_ms * self.smoothing
                                     + inference_ms * (1.0 - self.smoothing))

        return LiveUpdate(
            label=result.label,
            confidence_text=format_confidence(result.confidence),
            avg_inference_ms=self.avg_inference_ms,
        )
