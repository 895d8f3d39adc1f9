"""Payout batching."""

from affiliates.services.payout.aggregator import PayoutAggregator

__all__ = ["PayoutAggregator"]
