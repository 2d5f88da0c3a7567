from alembic import op
import sqlalchemy as sa

revision = '0002_add_shipment_history'
down_revision = '0001_init'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'shipment_history',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('shipment_id', sa.Integer, nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('location', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('timestamp', sa.DateTime, nullable=False),
    )
    op.create_index('ix_shipment_history_shipment_id', 'shipment_history', ['shipment_id'])
    # History cannot outlive its shipment
    op.create_foreign_key(
        'fk_shipment_history_shipment_id_shipments',
        source_table='shipment_history',
        referent_table='shipments',
        local_cols=['shipment_id'],
        remote_cols=['id'],
        ondelete='CASCADE'
    )

def downgrade():
    op.drop_constraint('fk_shipment_history_shipment_id_shipments', 'shipment_history', type_='foreignkey')
    op.drop_index('ix_shipment_history_shipment_id', table_name='shipment_history')
    op.drop_table('shipment_history')
