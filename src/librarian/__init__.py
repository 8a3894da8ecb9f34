"""librarian — library inventory, membership, and lending engine."""

__version__ = "0.1.0"
