"""DepSentinel — scan orchestration and cache consistency for dependency health."""

__version__ = "0.1.0"
