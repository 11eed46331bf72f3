"""Job-queue driven agent/tool orchestration core."""

__version__ = "0.1.0"
