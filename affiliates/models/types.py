"""
Standard type definitions for database models.

Provides consistent types for monetary, rate and timestamp fields across all
models.
"""

from datetime import datetime

from sqlalchemy import DECIMAL, BigInteger, DateTime
from sqlalchemy.types import TypeDecorator

from affiliates.utils.datetime_utils import ensure_utc

# Money in minor units (cents)
# Range: up to 9,223,372,036,854,775,807
CentsType = BigInteger

# Commission rate: percent for percentage campaigns, cents for fixed ones
# Precision: 10 digits total, 4 after decimal point
# Range: 0.0000 to 999999.9999
RatePercentType = DECIMAL(10, 4)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored in UTC.

    Backends without timezone support return naive values; they are read
    back as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        value = ensure_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        return ensure_utc(value)
