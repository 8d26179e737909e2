"""bisync: two-way reconciliation of file trees."""

__version__ = "0.1.0"
