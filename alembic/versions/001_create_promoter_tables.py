"""Create promoter referral tables

Revision ID: 001_promoter_referrals
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_promoter_referrals'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create users, partners, addresses, promoters, invitations and commissions"""

    # ====================
    # PARTNERS
    # ====================
    op.create_table(
        'partners',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=False),
        sa.Column('document', sa.String(20), nullable=False),
        sa.Column('document_type', sa.String(10), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_partners_email', 'partners', ['email'], unique=True)
    op.create_index('ix_partners_document', 'partners', ['document'], unique=True)

    op.create_table(
        'addresses',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('partner_id', UUID(as_uuid=True), sa.ForeignKey('partners.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('street', sa.String(255), nullable=False),
        sa.Column('number', sa.String(20), nullable=False),
        sa.Column('complement', sa.String(100), nullable=True),
        sa.Column('neighborhood', sa.String(100), nullable=False),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(2), nullable=False),
        sa.Column('zip_code', sa.String(9), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_addresses_partner_id', 'addresses', ['partner_id'])

    # ====================
    # USERS
    # ====================
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('role', sa.String(50), server_default='CUSTOMER', nullable=False),
        sa.Column('partner_id', UUID(as_uuid=True), sa.ForeignKey('partners.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('email_verified', sa.Boolean, server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # ====================
    # PROMOTERS
    # ====================
    op.create_table(
        'promoters',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), unique=True, nullable=False),
        sa.Column('business_name', sa.String(200), nullable=False),
        sa.Column('territory', sa.String(200), nullable=True),
        sa.Column('specialization', sa.String(200), nullable=True),
        sa.Column('tier', sa.String(20), server_default='BRONZE', nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 4), server_default='0.02', nullable=False),
        sa.Column('invitation_quota', sa.Integer, server_default='10', nullable=False),
        sa.Column('invitations_used', sa.Integer, server_default='0', nullable=False),
        sa.Column('successful_invitations', sa.Integer, server_default='0', nullable=False),
        sa.Column('total_partners_invited', sa.Integer, server_default='0', nullable=False),
        sa.Column('total_commissions_earned', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='false', nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.CheckConstraint('invitations_used >= 0', name='ck_promoters_invitations_used'),
        sa.CheckConstraint('commission_rate >= 0 AND commission_rate <= 1', name='ck_promoters_commission_rate'),
    )
    op.create_index('ix_promoters_is_active', 'promoters', ['is_active'])

    # ====================
    # PARTNER INVITATIONS
    # ====================
    op.create_table(
        'partner_invitations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('invitation_code', sa.String(12), nullable=False),
        sa.Column('promoter_id', UUID(as_uuid=True), sa.ForeignKey('promoters.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('target_email', sa.String(255), nullable=False),
        sa.Column('target_phone', sa.String(20), nullable=True),
        sa.Column('target_name', sa.String(200), nullable=True),
        sa.Column('target_business_name', sa.String(200), nullable=True),
        sa.Column('personalized_message', sa.Text, nullable=True),
        sa.Column('invitation_type', sa.String(20), server_default='DIRECT', nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('commission_percentage', sa.Numeric(5, 4), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('viewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('declined_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expiration_reason', sa.String(30), nullable=True),
        sa.Column('resulting_partner_id', UUID(as_uuid=True), sa.ForeignKey('partners.id', ondelete='RESTRICT'), unique=True, nullable=True),
        sa.Column('metadata', JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_partner_invitations_invitation_code', 'partner_invitations', ['invitation_code'], unique=True)
    op.create_index('ix_partner_invitations_promoter_status', 'partner_invitations', ['promoter_id', 'status'])
    op.create_index('ix_partner_invitations_target_email', 'partner_invitations', ['target_email'])
    op.create_index('ix_partner_invitations_expires_at', 'partner_invitations', ['expires_at'])
    op.create_index(
        'uq_partner_invitations_open_target',
        'partner_invitations',
        ['target_email'],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'SENT', 'VIEWED')"),
    )

    # ====================
    # PROMOTER COMMISSIONS
    # ====================
    op.create_table(
        'promoter_commissions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('promoter_id', UUID(as_uuid=True), sa.ForeignKey('promoters.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('partner_id', UUID(as_uuid=True), sa.ForeignKey('partners.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('commission_type', sa.String(30), nullable=False),
        sa.Column('reference_id', UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('percentage', sa.Numeric(5, 4), server_default='0', nullable=False),
        sa.Column('base_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('metadata', JSONB, nullable=True),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('dispute_reason', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('disputed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('commission_type', 'reference_id', name='uq_promoter_commissions_type_reference'),
    )
    op.create_index('ix_promoter_commissions_promoter_status', 'promoter_commissions', ['promoter_id', 'status'])
    op.create_index('ix_promoter_commissions_created_at', 'promoter_commissions', ['created_at'])


def downgrade():
    op.drop_table('promoter_commissions')
    op.drop_table('partner_invitations')
    op.drop_table('promoters')
    op.drop_table('users')
    op.drop_table('addresses')
    op.drop_table('partners')
