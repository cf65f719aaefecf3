"""
cdc-spine: scheduled change-data-capture poller.

Tracks a monotonic cursor per source table and periodically fetches the rows
inserted since the last successful poll, across PostgreSQL and SQLite
sources, persisting progress to a single durable registry file.
"""

__version__ = "0.1.0"
