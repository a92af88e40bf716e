"""Host-side orchestrator for a wavefront GPU path tracer."""

__version__ = "0.1.0"
