"""Classical cipher detection and solving engine."""

__version__ = "1.0.0"
