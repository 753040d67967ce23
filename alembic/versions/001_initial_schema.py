"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None

# SQLAlchemy stores enum member names
ENUMS = {
    'cschannel': ['VOICE', 'CHAT', 'EMAIL', 'SMS'],
    'cstier': ['AI_REP', 'AI_MANAGER', 'HUMAN_AGENT'],
    'cssessionstatus': ['ACTIVE', 'WAITING_CUSTOMER', 'ESCALATED', 'RESOLVED', 'ABANDONED'],
    'issuecategory': [
        'BILLING', 'SHIPPING', 'PRODUCT_QUALITY', 'REFUND', 'CANCELLATION', 'ACCOUNT_ACCESS',
        'TECHNICAL_SUPPORT', 'ORDER_STATUS', 'SUBSCRIPTION_CHANGE', 'GENERAL_INQUIRY',
    ],
    'customersentiment': ['HAPPY', 'SATISFIED', 'NEUTRAL', 'FRUSTRATED', 'ANGRY', 'IRATE'],
    'resolutiontype': [
        'ISSUE_RESOLVED', 'REFUND_ISSUED', 'REPLACEMENT_SENT', 'CREDIT_APPLIED', 'DISCOUNT_APPLIED',
        'SUBSCRIPTION_MODIFIED', 'ESCALATED_TO_HUMAN', 'TRANSFERRED', 'CUSTOMER_DECLINED', 'UNRESOLVED',
    ],
    'messagerole': ['CUSTOMER', 'AI_REP', 'AI_MANAGER', 'HUMAN_AGENT', 'SYSTEM'],
    'usagetype': ['CHAT_SESSION', 'LLM_COMPLETION'],
}


def create_enum_if_not_exists(enum_name, enum_values):
    """Create PostgreSQL ENUM type if it doesn't exist"""
    values_str = ", ".join([f"'{v}'" for v in enum_values])
    op.execute(f"""
        DO $$ BEGIN
            IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = '{enum_name}') THEN
                CREATE TYPE "{enum_name}" AS ENUM ({values_str});
            END IF;
        END $$;
    """)


def enum_column(enum_name):
    return postgresql.ENUM(*ENUMS[enum_name], name=enum_name, create_type=False)


def upgrade() -> None:
    for enum_name, enum_values in ENUMS.items():
        create_enum_if_not_exists(enum_name, enum_values)

    # Companies
    op.create_table(
        'companies',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    # LLM integrations
    op.create_table(
        'llm_integrations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False, unique=True, index=True),
        sa.Column('provider', sa.String(), nullable=False, server_default='anthropic'),
        sa.Column('api_key', sa.String(), nullable=True),
        sa.Column('default_model', sa.String(), nullable=True),
        sa.Column('max_tokens', sa.Integer(), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # Customers and their commerce history
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False, index=True),
        sa.Column('email', sa.String(), nullable=False, index=True),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False, index=True),
        sa.Column('total', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('fulfillment_status', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
    )

    op.create_table(
        'subscriptions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False, index=True),
        sa.Column('plan_name', sa.String(), nullable=True),
        sa.Column('plan_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='ACTIVE', index=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False, index=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='COMPLETED', index=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
    )

    # Customer-service configuration and pricing
    op.create_table(
        'cs_configs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False, unique=True, index=True),
        sa.Column('ai_rep_config', postgresql.JSONB(), nullable=True),
        sa.Column('ai_manager_config', postgresql.JSONB(), nullable=True),
        sa.Column('channel_configs', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'cs_ai_pricing',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False, unique=True, index=True),
        sa.Column('ai_rep_multiplier', sa.Float(), nullable=False, server_default='1.2'),
        sa.Column('ai_manager_multiplier', sa.Float(), nullable=False, server_default='1.2'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    # Sessions and messages
    op.create_table(
        'cs_sessions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False, index=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('channel', enum_column('cschannel'), nullable=False, index=True),
        sa.Column('current_tier', enum_column('cstier'), nullable=False, index=True),
        sa.Column('status', enum_column('cssessionstatus'), nullable=False, index=True),
        sa.Column('issue_category', enum_column('issuecategory'), nullable=True),
        sa.Column('customer_sentiment', enum_column('customersentiment'), nullable=False),
        sa.Column('sentiment_history', postgresql.JSONB(), nullable=False),
        sa.Column('escalation_history', postgresql.JSONB(), nullable=False),
        sa.Column('context', postgresql.JSONB(), nullable=True),
        sa.Column('resolution_type', enum_column('resolutiontype'), nullable=True),
        sa.Column('resolution_summary', sa.Text(), nullable=True),
        sa.Column('resolution_actions', postgresql.JSONB(), nullable=True),
        sa.Column('follow_up_required', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('follow_up_date', sa.DateTime(), nullable=True),
        sa.Column('customer_satisfaction', sa.Integer(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'cs_messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('session_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('cs_sessions.id'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('role', enum_column('messagerole'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('sentiment', enum_column('customersentiment'), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
        sa.UniqueConstraint('session_id', 'sequence', name='uq_cs_messages_session_sequence'),
    )

    # Usage ledger
    op.create_table(
        'cs_ai_usage',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('companies.id'), nullable=False, index=True),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('cs_session_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('usage_type', enum_column('usagetype'), nullable=False),
        sa.Column('tier', enum_column('cstier'), nullable=False),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ai_message_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('input_tokens', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('output_tokens', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('billing_period', sa.String(), nullable=False, index=True),
        sa.Column('base_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('markup_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
    )

    # Audit events
    op.create_table(
        'audit_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('session_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('event_type', sa.String(), nullable=False, index=True),
        sa.Column('payload', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
    )


def downgrade() -> None:
    op.drop_table('audit_events')
    op.drop_table('cs_ai_usage')
    op.drop_table('cs_messages')
    op.drop_table('cs_sessions')
    op.drop_table('cs_ai_pricing')
    op.drop_table('cs_configs')
    op.drop_table('transactions')
    op.drop_table('subscriptions')
    op.drop_table('orders')
    op.drop_table('customers')
    op.drop_table('llm_integrations')
    op.drop_table('companies')
    for enum_name in reversed(list(ENUMS)):
        op.execute(f'DROP TYPE IF EXISTS "{enum_name}"')
