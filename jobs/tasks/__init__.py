"""Dramatiq actors for periodic affiliate jobs."""

# Actors bind to the broker configured here
import jobs.broker  # noqa: F401
