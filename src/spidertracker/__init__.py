"""Cinema listing monitor with keyword matching and deduplicated alerts."""

__version__ = "0.2.0"
