"""releasekit: versioned multi-artifact release pipeline."""

__version__ = "0.4.0"
