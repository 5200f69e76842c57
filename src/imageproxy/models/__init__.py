"""Data models: SQLAlchemy tables and rewrite value types."""
