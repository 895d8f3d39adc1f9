"""
Affiliate service.

Registration, admin lifecycle transitions and profile management.
Every transition writes a lifecycle event to the outbox.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliates.config.constants import AFFILIATE_CODE_GENERATION_ATTEMPTS
from affiliates.models.affiliate import Affiliate
from affiliates.models.enums import (
    AffiliateStatus,
    CommissionType,
    LifecycleEventType,
    PayoutMethod,
)
from affiliates.repositories.affiliate_repository import AffiliateRepository
from affiliates.repositories.campaign_repository import CampaignRepository
from affiliates.services.base_service import BaseService, transaction
from affiliates.services.hooks import AffiliateEventData
from affiliates.services.outbox import OutboxWriter
from affiliates.services.schemas import CodeValidation
from affiliates.utils.datetime_utils import Clock, utc_now
from affiliates.utils.exceptions import DuplicateError, InvalidStateError, NotFoundError
from affiliates.utils.pagination import Page
from affiliates.validators.common import (
    normalize_code,
    validate_affiliate_code,
    validate_commission_value,
)
from affiliates.validators.rates import generate_affiliate_code

# Profile fields an affiliate may edit
PROFILE_FIELDS = frozenset(
    {"display_name", "bio", "website", "socials", "payout_email", "payout_method"}
)


class AffiliateService(BaseService):
    """Affiliate lifecycle."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        super().__init__(session, clock)
        self.affiliates = AffiliateRepository(session)
        self.campaigns = CampaignRepository(session)
        self.outbox = OutboxWriter(session)

    @transaction
    async def register(
        self,
        user_id: str,
        email: str,
        campaign_id: int | None = None,
        custom_code: str | None = None,
        display_name: str | None = None,
        website: str | None = None,
        payout_email: str | None = None,
    ) -> Affiliate:
        """
        Register a user as a pending affiliate.

        Args:
            user_id: Host user
            email: Contact email
            campaign_id: Campaign to enroll in, the default one if omitted
            custom_code: Requested code, generated if omitted
            display_name: Public name
            website: Affiliate website
            payout_email: Where payouts go, defaults to email

        Returns:
            Created affiliate

        Raises:
            DuplicateError: If user is already an affiliate or code is taken
            NotFoundError: If campaign (or default campaign) is missing
            ValueError: If custom code is malformed
        """
        if await self.affiliates.get_by_user_id(user_id):
            raise DuplicateError("User is already an affiliate")

        if campaign_id is not None:
            campaign = await self.campaigns.get_by_id(campaign_id)
        else:
            campaign = await self.campaigns.get_default()
        if not campaign:
            raise NotFoundError("Campaign not found")

        code = await self._pick_code(custom_code)

        try:
            affiliate = await self.affiliates.create(
                user_id=user_id,
                campaign_id=campaign.id,
                code=code,
                email=email,
                display_name=display_name,
                website=website,
                payout_email=payout_email or email,
                payout_method=PayoutMethod.MANUAL.value,
                status=AffiliateStatus.PENDING.value,
            )
        except IntegrityError as e:
            raise DuplicateError("Affiliate user or code already exists") from e

        await self._emit(LifecycleEventType.AFFILIATE_REGISTERED, affiliate)
        self.logger.info(
            "Affiliate registered",
            extra={
                "affiliate_id": affiliate.id,
                "code": affiliate.code,
                "campaign_id": campaign.id,
            },
        )
        return affiliate

    @transaction
    async def approve(self, affiliate_id: int) -> Affiliate:
        """
        Approve a pending affiliate.

        Raises:
            NotFoundError: If affiliate doesn't exist
            InvalidStateError: If affiliate is not pending
        """
        affiliate = await self._transition(
            affiliate_id,
            AffiliateStatus.APPROVED,
            allowed_from=(AffiliateStatus.PENDING,),
            action="approve",
        )
        affiliate.approved_at = self.clock()
        await self.session.flush()
        await self._emit(LifecycleEventType.AFFILIATE_APPROVED, affiliate)
        return affiliate

    @transaction
    async def reject(self, affiliate_id: int) -> Affiliate:
        """
        Reject a pending application.

        Raises:
            NotFoundError: If affiliate doesn't exist
            InvalidStateError: If affiliate is not pending
        """
        affiliate = await self._transition(
            affiliate_id,
            AffiliateStatus.REJECTED,
            allowed_from=(AffiliateStatus.PENDING,),
            action="reject",
        )
        await self._emit(LifecycleEventType.AFFILIATE_REJECTED, affiliate)
        return affiliate

    @transaction
    async def suspend(self, affiliate_id: int) -> Affiliate:
        """
        Suspend an affiliate. Suspending twice has no effect.

        Raises:
            NotFoundError: If affiliate doesn't exist
        """
        affiliate = await self._get_locked(affiliate_id)
        if affiliate.status == AffiliateStatus.SUSPENDED:
            return affiliate

        affiliate = await self._transition(
            affiliate_id,
            AffiliateStatus.SUSPENDED,
            allowed_from=tuple(AffiliateStatus),
            action="suspend",
        )
        await self._emit(LifecycleEventType.AFFILIATE_SUSPENDED, affiliate)
        return affiliate

    @transaction
    async def reactivate(self, affiliate_id: int) -> Affiliate:
        """
        Return a suspended affiliate to approved.

        Raises:
            NotFoundError: If affiliate doesn't exist
            InvalidStateError: If affiliate is not suspended
        """
        return await self._transition(
            affiliate_id,
            AffiliateStatus.APPROVED,
            allowed_from=(AffiliateStatus.SUSPENDED,),
            action="reactivate",
        )

    @transaction
    async def update_profile(self, affiliate_id: int, **changes: Any) -> Affiliate:
        """
        Update editable profile fields.

        Raises:
            NotFoundError: If affiliate doesn't exist
            ValueError: If a field is not editable
        """
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {sorted(unknown)}")
        if changes.get("payout_method") is not None:
            changes["payout_method"] = PayoutMethod(changes["payout_method"]).value

        affiliate = await self._get_locked(affiliate_id)
        for key, value in changes.items():
            setattr(affiliate, key, value)
        await self.session.flush()
        return affiliate

    @transaction
    async def set_custom_commission(
        self,
        affiliate_id: int,
        commission_type: str | None,
        commission_value: Decimal | int | float | None,
    ) -> Affiliate:
        """
        Set or clear (both None) the affiliate's rate override.

        Raises:
            NotFoundError: If affiliate doesn't exist
            ValueError: If rate is invalid or only one of the pair is given
        """
        if (commission_type is None) != (commission_value is None):
            raise ValueError("Commission type and value must be set together")

        rate = None
        if commission_type is not None:
            is_valid, rate, error = validate_commission_value(
                commission_type, commission_value
            )
            if not is_valid:
                raise ValueError(error)
            commission_type = CommissionType(commission_type).value

        affiliate = await self._get_locked(affiliate_id)
        affiliate.custom_commission_type = commission_type
        affiliate.custom_commission_value = rate
        await self.session.flush()

        self.logger.info(
            "Custom commission set",
            extra={
                "affiliate_id": affiliate_id,
                "commission_type": commission_type,
                "commission_value": str(rate) if rate is not None else None,
            },
        )
        return affiliate

    async def get(self, affiliate_id: int) -> Affiliate | None:
        return await self.affiliates.get_by_id(affiliate_id)

    async def get_by_code(self, code: str) -> Affiliate | None:
        return await self.affiliates.get_by_code(normalize_code(code))

    async def get_by_user(self, user_id: str) -> Affiliate | None:
        return await self.affiliates.get_by_user_id(user_id)

    async def list_affiliates(
        self,
        status: str | None = None,
        campaign_id: int | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[Affiliate]:
        return await self.affiliates.list_affiliates(
            status=status, campaign_id=campaign_id, limit=limit, cursor=cursor
        )

    async def validate_code(self, code: str) -> CodeValidation | None:
        """
        Public check that a code belongs to an approved affiliate.

        Returns:
            Code details, or None when no affiliate has the code
        """
        affiliate = await self.get_by_code(code)
        if not affiliate:
            return None
        return CodeValidation(
            code=affiliate.code,
            display_name=affiliate.display_name,
            valid=affiliate.is_approved,
        )

    async def _pick_code(self, custom_code: str | None) -> str:
        if custom_code:
            is_valid, code, error = validate_affiliate_code(custom_code)
            if not is_valid:
                raise ValueError(error)
            if await self.affiliates.code_exists(code):
                raise DuplicateError(f"Affiliate code {code} is taken")
            return code

        for _ in range(AFFILIATE_CODE_GENERATION_ATTEMPTS):
            code = generate_affiliate_code()
            if not await self.affiliates.code_exists(code):
                return code
        raise DuplicateError("Could not generate a unique affiliate code")

    async def _get_locked(self, affiliate_id: int) -> Affiliate:
        affiliate = await self.affiliates.get_for_update(affiliate_id)
        if not affiliate:
            raise NotFoundError(f"Affiliate {affiliate_id} not found")
        return affiliate

    async def _transition(
        self,
        affiliate_id: int,
        new_status: AffiliateStatus,
        allowed_from: tuple[AffiliateStatus, ...],
        action: str,
    ) -> Affiliate:
        affiliate = await self._get_locked(affiliate_id)
        if affiliate.status not in allowed_from:
            raise InvalidStateError(
                f"Cannot {action} affiliate with status: {affiliate.status}"
            )

        previous = affiliate.status
        affiliate.status = new_status.value
        await self.session.flush()

        self.logger.info(
            f"Affiliate status changed: {previous} -> {new_status.value}",
            extra={"affiliate_id": affiliate_id, "action": action},
        )
        return affiliate

    async def _emit(self, event_type: LifecycleEventType, affiliate: Affiliate) -> None:
        await self.outbox.add(
            event_type,
            AffiliateEventData(
                affiliate_id=affiliate.id,
                user_id=affiliate.user_id,
                code=affiliate.code,
                email=affiliate.email,
                status=affiliate.status,
            ),
        )
