"""
Business constants.

Single source of truth for fixed values used by the commission engine.
"""

from datetime import timedelta

# Affiliate codes
AFFILIATE_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
AFFILIATE_CODE_LENGTH = 8
AFFILIATE_CODE_MAX_LENGTH = 32
AFFILIATE_CODE_GENERATION_ATTEMPTS = 10

# Payout terms: delay between commission creation and payout eligibility
PAYOUT_TERM_DELAYS: dict[str, timedelta] = {
    "NET-0": timedelta(0),
    "NET-15": timedelta(days=15),
    "NET-30": timedelta(days=30),
    "NET-60": timedelta(days=60),
    "NET-90": timedelta(days=90),
}

# Commission duration policy
# "max_months" counts elapsed time in 30-day months
COMMISSION_MONTH = timedelta(days=30)
DEFAULT_MAX_PAYMENTS = 1
DEFAULT_MAX_MONTHS = 12

# Campaign defaults
DEFAULT_COMMISSION_VALUE = 20.0  # percent
DEFAULT_COOKIE_DURATION_DAYS = 30
DEFAULT_MIN_PAYOUT_CENTS = 5000  # $50
DEFAULT_CURRENCY = "usd"

# Click velocity
DEFAULT_MAX_CLICKS_PER_IP_PER_HOUR = 60
CLICK_VELOCITY_WINDOW = timedelta(hours=1)

# Webhooks
WEBHOOK_TOLERANCE_SECONDS = 300
WEBHOOK_SIGNATURE_HEADER = "X-Affiliates-Signature"
WEBHOOK_SIGNATURE_SCHEME = "v1"

# Pagination
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

# Portal
RECENT_COMMISSIONS_LIMIT = 10

# Affiliate link query parameters
REF_QUERY_PARAM = "ref"
SUB_ID_QUERY_PARAM = "sub"

# Background job time limits (milliseconds)
JOB_TIME_LIMIT_SHORT = 60_000
JOB_TIME_LIMIT_STANDARD = 300_000
JOB_TIME_LIMIT_LONG = 600_000

# Background job retries
JOB_MAX_RETRIES = 3
JOB_MIN_BACKOFF_MS = 1_000
JOB_MAX_BACKOFF_MS = 60_000
