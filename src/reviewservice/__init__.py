"""Product review service with moderated rating aggregation."""

__version__ = "1.0.0"
