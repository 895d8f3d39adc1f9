"""Create affiliate program tables

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '20261018_000001'
down_revision = None
branch_labels = None
depends_on = None

CENTS = sa.BigInteger()
RATE = sa.Numeric(10, 4)
TS = sa.DateTime(timezone=True)

STAT_COLUMNS = (
    'total_clicks',
    'total_signups',
    'total_conversions',
    'total_revenue_cents',
    'total_commissions_cents',
    'pending_commissions_cents',
    'paid_commissions_cents',
)


def upgrade() -> None:
    # 1. Campaigns and their rate overrides
    op.create_table(
        'campaigns',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('commission_type', sa.String(20), nullable=False, server_default='percentage'),
        sa.Column('commission_value', RATE, nullable=False),
        sa.Column('commission_duration', sa.String(20), nullable=False, server_default='lifetime'),
        sa.Column('commission_duration_value', sa.Integer(), nullable=True),
        sa.Column('cookie_duration_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('min_payout_cents', CENTS, nullable=False, server_default='5000'),
        sa.Column('payout_term', sa.String(10), nullable=False, server_default='NET-30'),
        sa.Column('allowed_products', sa.JSON(), nullable=True),
        sa.Column('excluded_products', sa.JSON(), nullable=True),
        sa.Column('max_clicks_per_ip_per_hour', sa.Integer(), nullable=True),
        sa.Column('referee_discount_type', sa.String(20), nullable=True),
        sa.Column('referee_discount_value', RATE, nullable=True),
        sa.Column('referee_coupon_id', sa.String(255), nullable=True),
        sa.Column('created_at', TS, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('slug', name='uq_campaigns_slug'),
        sa.CheckConstraint('commission_value >= 0', name='ck_campaigns_commission_value_non_negative'),
        sa.CheckConstraint('cookie_duration_days > 0', name='ck_campaigns_cookie_duration_positive'),
        sa.CheckConstraint('min_payout_cents >= 0', name='ck_campaigns_min_payout_non_negative'),
    )
    op.create_index('ix_campaigns_is_active', 'campaigns', ['is_active'])
    # At most one default campaign
    op.create_index(
        'uq_campaigns_single_default',
        'campaigns',
        ['is_default'],
        unique=True,
        postgresql_where=sa.text('is_default'),
        sqlite_where=sa.text('is_default = 1'),
    )

    op.create_table(
        'commission_tiers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('campaign_id', sa.Integer(), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('min_referrals', sa.Integer(), nullable=False),
        sa.Column('commission_type', sa.String(20), nullable=False),
        sa.Column('commission_value', RATE, nullable=False),
        sa.UniqueConstraint('campaign_id', 'min_referrals', name='uq_tier_campaign_min'),
        sa.CheckConstraint('min_referrals >= 0', name='ck_commission_tiers_min_referrals_non_negative'),
    )
    op.create_index('ix_commission_tiers_campaign_id', 'commission_tiers', ['campaign_id'])

    op.create_table(
        'product_commissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('campaign_id', sa.Integer(), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(255), nullable=False),
        sa.Column('commission_type', sa.String(20), nullable=False),
        sa.Column('commission_value', RATE, nullable=False),
        sa.UniqueConstraint('campaign_id', 'product_id', name='uq_product_commission_campaign_product'),
    )
    op.create_index('ix_product_commissions_campaign_id', 'product_commissions', ['campaign_id'])

    # 2. Affiliates
    op.create_table(
        'affiliates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('campaign_id', sa.Integer(), sa.ForeignKey('campaigns.id'), nullable=False),
        sa.Column('code', sa.String(32), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(200), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('website', sa.String(500), nullable=True),
        sa.Column('socials', sa.JSON(), nullable=True),
        sa.Column('custom_commission_type', sa.String(20), nullable=True),
        sa.Column('custom_commission_value', RATE, nullable=True),
        sa.Column('payout_method', sa.String(20), nullable=True),
        sa.Column('payout_email', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('total_clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_signups', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_conversions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_revenue_cents', CENTS, nullable=False, server_default='0'),
        sa.Column('total_commissions_cents', CENTS, nullable=False, server_default='0'),
        sa.Column('pending_commissions_cents', CENTS, nullable=False, server_default='0'),
        sa.Column('paid_commissions_cents', CENTS, nullable=False, server_default='0'),
        sa.Column('approved_at', TS, nullable=True),
        sa.Column('created_at', TS, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', name='uq_affiliates_user_id'),
        sa.UniqueConstraint('code', name='uq_affiliates_code'),
        *(
            sa.CheckConstraint(f'{column} >= 0', name=f'ck_affiliates_{column}_non_negative')
            for column in STAT_COLUMNS
        ),
    )
    op.create_index('ix_affiliates_campaign_id', 'affiliates', ['campaign_id'])
    op.create_index('ix_affiliates_status', 'affiliates', ['status'])
    op.create_index('ix_affiliates_campaign_status', 'affiliates', ['campaign_id', 'status'])

    # 3. Referrals
    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('affiliate_id', sa.Integer(), sa.ForeignKey('affiliates.id'), nullable=False),
        sa.Column('referral_id', sa.String(64), nullable=False),
        sa.Column('landing_page', sa.String(2000), nullable=False),
        sa.Column('utm_source', sa.String(255), nullable=True),
        sa.Column('utm_medium', sa.String(255), nullable=True),
        sa.Column('utm_campaign', sa.String(255), nullable=True),
        sa.Column('sub_id', sa.String(255), nullable=True),
        sa.Column('device_type', sa.String(50), nullable=True),
        sa.Column('country', sa.String(2), nullable=True),
        sa.Column('ip_hash', sa.String(64), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='clicked'),
        sa.Column('user_id', sa.String(255), nullable=True),
        sa.Column('customer_id', sa.String(255), nullable=True),
        sa.Column('clicked_at', TS, nullable=False),
        sa.Column('signed_up_at', TS, nullable=True),
        sa.Column('converted_at', TS, nullable=True),
        sa.Column('expires_at', TS, nullable=False),
        sa.UniqueConstraint('referral_id', name='uq_referrals_referral_id'),
        sa.UniqueConstraint('user_id', name='uq_referrals_user_id'),
        sa.UniqueConstraint('customer_id', name='uq_referrals_customer_id'),
    )
    op.create_index('ix_referrals_affiliate_id', 'referrals', ['affiliate_id'])
    op.create_index('ix_referrals_affiliate_status', 'referrals', ['affiliate_id', 'status'])
    op.create_index('ix_referrals_status_expires', 'referrals', ['status', 'expires_at'])
    op.create_index('ix_referrals_ip_hash_clicked', 'referrals', ['ip_hash', 'clicked_at'])

    # 4. Payouts before commissions (commissions.payout_id)
    op.create_table(
        'payouts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('affiliate_id', sa.Integer(), sa.ForeignKey('affiliates.id'), nullable=False),
        sa.Column('amount_cents', CENTS, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='usd'),
        sa.Column('method', sa.String(20), nullable=False, server_default='manual'),
        sa.Column('commissions_count', sa.Integer(), nullable=False),
        sa.Column('period_start', TS, nullable=False),
        sa.Column('period_end', TS, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', TS, nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', TS, nullable=True),
        sa.CheckConstraint('amount_cents >= 0', name='ck_payouts_amount_non_negative'),
    )
    op.create_index('ix_payouts_affiliate_id', 'payouts', ['affiliate_id'])
    op.create_index('ix_payouts_status', 'payouts', ['status'])
    op.create_index('ix_payouts_affiliate_status', 'payouts', ['affiliate_id', 'status'])

    op.create_table(
        'commissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('affiliate_id', sa.Integer(), sa.ForeignKey('affiliates.id'), nullable=False),
        sa.Column('referral_id', sa.Integer(), sa.ForeignKey('referrals.id'), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=False),
        sa.Column('external_event_id', sa.String(255), nullable=False),
        sa.Column('charge_id', sa.String(255), nullable=True),
        sa.Column('subscription_id', sa.String(255), nullable=True),
        sa.Column('product_id', sa.String(255), nullable=True),
        sa.Column('payment_number', sa.Integer(), nullable=True),
        sa.Column('sale_amount_cents', CENTS, nullable=False),
        sa.Column('commission_amount_cents', CENTS, nullable=False),
        sa.Column('commission_rate', RATE, nullable=False),
        sa.Column('commission_type', sa.String(20), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='usd'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payout_id', sa.Integer(), sa.ForeignKey('payouts.id'), nullable=True),
        sa.Column('due_at', TS, nullable=False),
        sa.Column('created_at', TS, nullable=False, server_default=sa.func.now()),
        sa.Column('approved_at', TS, nullable=True),
        sa.Column('paid_at', TS, nullable=True),
        sa.Column('reversed_at', TS, nullable=True),
        sa.Column('reversal_reason', sa.Text(), nullable=True),
        # Idempotency of payment events
        sa.UniqueConstraint('external_event_id', name='uq_commissions_external_event_id'),
        sa.CheckConstraint('sale_amount_cents >= 0', name='ck_commissions_sale_amount_non_negative'),
        sa.CheckConstraint('commission_amount_cents >= 0', name='ck_commissions_commission_amount_non_negative'),
    )
    op.create_index('ix_commissions_affiliate_id', 'commissions', ['affiliate_id'])
    op.create_index('ix_commissions_referral_id', 'commissions', ['referral_id'])
    op.create_index('ix_commissions_charge_id', 'commissions', ['charge_id'])
    op.create_index('ix_commissions_payout_id', 'commissions', ['payout_id'])
    op.create_index('ix_commissions_affiliate_status', 'commissions', ['affiliate_id', 'status'])
    op.create_index('ix_commissions_status_due', 'commissions', ['status', 'due_at'])

    # 5. Analytics and outbox
    op.create_table(
        'analytics_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('affiliate_id', sa.Integer(), sa.ForeignKey('affiliates.id'), nullable=False),
        sa.Column('event_type', sa.String(20), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('occurred_at', TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_analytics_events_affiliate_id', 'analytics_events', ['affiliate_id'])
    op.create_index('ix_analytics_events_occurred_at', 'analytics_events', ['occurred_at'])
    op.create_index('ix_analytics_events_affiliate_type', 'analytics_events', ['affiliate_id', 'event_type'])

    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', TS, nullable=False, server_default=sa.func.now()),
        sa.Column('dispatched_at', TS, nullable=True),
    )
    op.create_index('ix_outbox_events_pending', 'outbox_events', ['dispatched_at', 'id'])


def downgrade() -> None:
    op.drop_table('outbox_events')
    op.drop_table('analytics_events')
    op.drop_table('commissions')
    op.drop_table('payouts')
    op.drop_table('referrals')
    op.drop_table('affiliates')
    op.drop_table('product_commissions')
    op.drop_table('commission_tiers')
    op.drop_index('uq_campaigns_single_default', table_name='campaigns')
    op.drop_table('campaigns')
