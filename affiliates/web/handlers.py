"""
HTTP handlers.

Thin adapters from aiohttp requests to AffiliateProgram operations.
"""

import json

from aiohttp import web
from loguru import logger

from affiliates.config.constants import WEBHOOK_SIGNATURE_HEADER
from affiliates.program import AffiliateProgram
from affiliates.services.schemas import ClickMetadata
from affiliates.services.webhook.signature import MissingSignatureError
from affiliates.utils.exceptions import WebhookSignatureError
from affiliates.utils.security import mask_signature

PROGRAM_KEY = web.AppKey("program", AffiliateProgram)


async def payment_webhook_handler(request: web.Request) -> web.Response:
    """
    Payment webhook endpoint.

    Returns:
        200 {"received": true}, 400 without signature, 401 on a bad
        signature, 500 when processing failed and the sender should retry
    """
    program = request.app[PROGRAM_KEY]
    raw_body = await request.read()
    signature = request.headers.get(WEBHOOK_SIGNATURE_HEADER)

    try:
        result = await program.handle_webhook(raw_body, signature)
    except MissingSignatureError:
        return web.json_response({"error": "Missing signature"}, status=400)
    except WebhookSignatureError as e:
        logger.warning(
            f"Webhook rejected: {e}",
            extra={"signature": mask_signature(signature)},
        )
        return web.json_response({"error": "Invalid signature"}, status=401)
    except Exception as e:
        logger.exception(f"Webhook processing failed: {e}")
        return web.json_response(
            {"error": "Webhook processing failed"}, status=500
        )

    return web.json_response(result)


async def validate_code_handler(request: web.Request) -> web.Response:
    """
    Public affiliate code lookup.

    Returns:
        200 {code, displayName, valid} or 404
    """
    program = request.app[PROGRAM_KEY]
    validation = await program.validate_code(request.match_info["code"])
    if validation is None:
        return web.json_response({"error": "Affiliate not found"}, status=404)
    return web.json_response(validation)


async def track_click_handler(request: web.Request) -> web.Response:
    """
    Public click tracking.

    Body: {"code": ..., "landing_page": ..., "sub_id": ..., "utm_source": ...}

    Returns:
        200 {"referral_id": id or null}
    """
    program = request.app[PROGRAM_KEY]
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return web.json_response({"error": "Invalid JSON body"}, status=400)
    if not isinstance(body, dict) or not body.get("code"):
        return web.json_response({"error": "code is required"}, status=400)

    metadata = ClickMetadata(
        ip_address=request.remote,
        utm_source=body.get("utm_source"),
        utm_medium=body.get("utm_medium"),
        utm_campaign=body.get("utm_campaign"),
        sub_id=body.get("sub_id"),
        device_type=body.get("device_type"),
        country=body.get("country"),
    )
    referral_id = await program.track_click(
        str(body["code"]), body.get("landing_page") or "/", metadata
    )
    return web.json_response({"referral_id": referral_id})
