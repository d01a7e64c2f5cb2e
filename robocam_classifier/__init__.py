"""Live TFLite camera classifier with a per-model latency benchmark."""

__version__ = "1.0.0"
