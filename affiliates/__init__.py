"""
Affiliate program engine.

Referral attribution, commission calculation and payout batching.
"""

__version__ = "0.1.0"
