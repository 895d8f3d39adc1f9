"""Unit tests for pagination, results, error categories, transactions and hook payloads."""

import pytest
from loguru import logger
from sqlalchemy.exc import OperationalError

from affiliates.services.base_service import BaseService, transaction
from affiliates.services.hooks import (
    AffiliateEventData,
    CommissionCreatedData,
    LifecycleHooks,
    build_payload,
)
from affiliates.services.results import Blocked, BlockReason, Ok, value_or_none
from affiliates.utils.exceptions import (
    DuplicateError,
    WebhookPayloadError,
    WebhookSignatureError,
    is_client_error,
    is_retryable,
)
from affiliates.utils.pagination import (
    InvalidCursorError,
    clamp_limit,
    decode_cursor,
    encode_cursor,
)


class TestPagination:
    """Tests for cursor helpers."""

    def test_cursor_is_opaque(self):
        cursor = encode_cursor(42)
        assert "42" not in cursor
        assert decode_cursor(cursor) == 42

    def test_no_cursor(self):
        assert decode_cursor(None) is None
        assert decode_cursor("") is None

    @pytest.mark.parametrize("cursor", ["not-base64!", "aWQ6eA==", "Zm9vOjE="])
    def test_invalid_cursor(self, cursor):
        with pytest.raises(InvalidCursorError):
            decode_cursor(cursor)

    @pytest.mark.parametrize(
        "limit,expected", [(None, 25), (0, 25), (-5, 1), (10, 10), (500, 100)]
    )
    def test_clamp_limit(self, limit, expected):
        assert clamp_limit(limit) == expected


class TestResults:
    """Tests for tagged results."""

    def test_ok_value(self):
        assert value_or_none(Ok("x")) == "x"
        assert Ok("x").ok

    def test_blocked_collapses_to_none(self):
        blocked = Blocked(BlockReason.SELF_REFERRAL)
        assert value_or_none(blocked) is None
        assert not blocked.ok


class TestErrorCategories:
    """Tests for retryable/client error classification."""

    def test_database_outage_retryable(self):
        exc = OperationalError("SELECT 1", {}, Exception("connection lost"))
        assert is_retryable(exc)
        assert not is_client_error(exc)

    def test_malformed_payload_retryable(self):
        assert is_retryable(WebhookPayloadError("bad"))

    def test_signature_error_is_client_error(self):
        assert is_client_error(WebhookSignatureError("bad"))
        assert not is_retryable(WebhookSignatureError("bad"))

    def test_duplicate_not_retryable(self):
        assert not is_retryable(DuplicateError("dup"))

    def test_unknown_exception(self):
        assert not is_retryable(ValueError("x"))


class _Writer(BaseService):
    @transaction
    async def insert(self, exc: Exception):
        raise exc

    @transaction
    async def outer(self, exc: Exception):
        return await self.insert(exc)


@pytest.fixture
def log_levels():
    """Collect loguru level names emitted during a test."""
    levels = []
    handler_id = logger.add(
        lambda message: levels.append(message.record["level"].name), level="DEBUG"
    )
    yield levels
    logger.remove(handler_id)


class TestTransaction:
    """Tests for the transaction decorator."""

    async def test_duplicate_logged_as_warning(self, mock_session, log_levels):
        with pytest.raises(DuplicateError):
            await _Writer(mock_session).insert(DuplicateError("taken"))

        mock_session.rollback.assert_awaited_once()
        assert "WARNING" in log_levels
        assert "ERROR" not in log_levels

    async def test_failure_logged_as_error(self, mock_session, log_levels):
        with pytest.raises(RuntimeError):
            await _Writer(mock_session).insert(RuntimeError("boom"))

        mock_session.rollback.assert_awaited_once()
        assert "ERROR" in log_levels

    async def test_nested_rolls_back_once(self, mock_session):
        with pytest.raises(DuplicateError):
            await _Writer(mock_session).outer(DuplicateError("taken"))

        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()
        assert mock_session.info["affiliates.transaction_depth"] == 0


class TestLifecycleHooks:
    """Tests for hook lookup and payload rebuilding."""

    def test_handler_for_event_type(self):
        def on_created(payload):
            return None

        hooks = LifecycleHooks(on_commission_created=on_created)
        assert hooks.handler_for("commission.created") is on_created
        assert hooks.handler_for("commission.reversed") is None

    def test_unknown_event_type_has_no_handler(self):
        assert LifecycleHooks().handler_for("payout.sent") is None

    def test_build_payload_drops_unknown_keys(self):
        payload = build_payload(
            "commission.created",
            {
                "commission_id": 1,
                "affiliate_id": 2,
                "affiliate_code": "JOHN20",
                "amount_cents": 2000,
                "currency": "usd",
                "legacy_field": True,
            },
        )
        assert payload == CommissionCreatedData(1, 2, "JOHN20", 2000, "usd")

    def test_affiliate_events_share_payload(self):
        data = {
            "affiliate_id": 1,
            "user_id": "u1",
            "code": "JOHN20",
            "email": "a@example.com",
            "status": "approved",
        }
        assert isinstance(build_payload("affiliate.approved", data), AffiliateEventData)

    def test_unknown_event_type(self):
        with pytest.raises(KeyError):
            build_payload("payout.sent", {})
