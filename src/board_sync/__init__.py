"""Board sync service: live case board state synchronization and command dispatch."""

__version__ = "1.0.0"
