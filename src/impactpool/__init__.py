"""ImpactPool: cycle-based donation pool with quadratic voting and impact-weighted distribution."""

__version__ = "0.1.0"
