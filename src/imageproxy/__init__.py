"""Image proxy rewriting for ticket message content."""

__version__ = "0.1.0"
