from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'shipments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', sa.Integer, nullable=False),
        sa.Column('tracking_number', sa.String(50), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('recipient_name', sa.String(100), nullable=False),
        sa.Column('recipient_address', sa.String(255), nullable=False),
        sa.Column('recipient_city', sa.String(100), nullable=False),
        sa.Column('recipient_postal_code', sa.String(20), nullable=False),
        sa.Column('recipient_country', sa.String(100), nullable=False),
        sa.Column('recipient_phone', sa.String(20), nullable=True),
        sa.Column('weight_kg', sa.Float, nullable=False, server_default='0'),
        sa.Column('current_location', sa.String(100), nullable=True),
        sa.Column('estimated_delivery', sa.DateTime, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_shipments_order_id', 'shipments', ['order_id'])
    op.create_index('ix_shipments_tracking_number', 'shipments', ['tracking_number'], unique=True)
    op.create_index('ix_shipments_status', 'shipments', ['status'])

def downgrade():
    op.drop_index('ix_shipments_status', table_name='shipments')
    op.drop_index('ix_shipments_tracking_number', table_name='shipments')
    op.drop_index('ix_shipments_order_id', table_name='shipments')
    op.drop_table('shipments')
