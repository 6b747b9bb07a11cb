"""Live camera preview compositing and landmark-driven liveness verification."""

__version__ = "1.0.0"
