"""Commission calculation and ledger."""

from affiliates.services.commission.calculator import CommissionCalculator
from affiliates.services.commission.ledger import CommissionLedger

__all__ = ["CommissionCalculator", "CommissionLedger"]
