"""initial packloop schema

Revision ID: a1c0ffee0001
Revises:
Create Date: 2026-03-01 00:00:00.000000

Creates the complete PackLoop schema from scratch:
- reference data: locations, retailers, hubs, customers, packaging_catalog
- assets: packaging_instances (versioned state machine rows)
- deposits: deposit_accounts + append-only deposit_transactions
- loans: checkouts (one open per instance) and returns (one per checkout)
- quality: wash_cycles, wash_cycle_items, inspections, contamination_incidents
- telemetry: sensor_readings, movements
- audit_logs (no foreign keys)
- views: v_instance_last_location, v_customer_balances
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c0ffee0001'
down_revision = None
branch_labels = None
depends_on = None


LAST_LOCATION_SELECT = """
SELECT instance_id, to_loc_id, moved_at
FROM (
    SELECT m.instance_id, m.to_loc_id, m.moved_at,
           ROW_NUMBER() OVER (
               PARTITION BY m.instance_id ORDER BY m.moved_at DESC, m.id DESC
           ) AS rn
    FROM movements m
) ranked
WHERE rn = 1
"""

CUSTOMER_BALANCES_SELECT = """
SELECT c.id AS customer_id,
       c.name AS name,
       da.balance_cents AS balance_cents,
       COALESCE(SUM(dt.delta_cents), 0) AS ledger_sum_cents
FROM customers c
LEFT JOIN deposit_accounts da ON da.customer_id = c.id
LEFT JOIN deposit_transactions dt ON dt.account_id = da.id
GROUP BY c.id, c.name, da.balance_cents
"""


def _now():
    return sa.text('CURRENT_TIMESTAMP')


def upgrade():
    # ============================================================================
    # Reference data
    # ============================================================================
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('lng', sa.Numeric(9, 6), nullable=True),
        sa.CheckConstraint("kind IN ('retailer','hub','dropbox')", name='ck_locations_kind'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_locations_kind', 'locations', ['kind'])

    op.create_table(
        'retailers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('contact_email', sa.String(length=190), nullable=True),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', name='uq_retailers_location'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'hubs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('washer_model', sa.String(length=80), nullable=True),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', name='uq_hubs_location'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=190), nullable=True),
        sa.Column('phone', sa.String(length=40), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'packaging_catalog',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('material', sa.String(length=30), nullable=False),
        sa.Column('capacity_ml', sa.Integer(), nullable=True),
        sa.Column('deposit_amount_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint("kind IN ('cup','box','jar')", name='ck_catalog_kind'),
        sa.CheckConstraint('deposit_amount_cents >= 0', name='ck_catalog_deposit'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # Asset instances
    # ============================================================================
    op.create_table(
        'packaging_instances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('catalog_id', sa.Integer(), nullable=False),
        sa.Column('uid_code', sa.String(length=64), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False),
        sa.Column('birthed_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('retired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "state IN ('available','in_use','at_retailer','at_hub','washing','damaged','lost','retired')",
            name='ck_instances_state',
        ),
        sa.ForeignKeyConstraint(['catalog_id'], ['packaging_catalog.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uid_code', name='uq_instances_uid'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_instances_catalog', 'packaging_instances', ['catalog_id'])
    op.create_index('idx_instances_state', 'packaging_instances', ['state'])

    # ============================================================================
    # Deposit ledger: balance + append-only transactions
    # ============================================================================
    op.create_table(
        'deposit_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', name='uq_deposit_customer'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'deposit_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('delta_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=120), nullable=False),
        sa.Column('ref_table', sa.String(length=40), nullable=True),
        sa.Column('ref_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.CheckConstraint(
            "reason IN ('checkout_hold','return_release','penalty','adjustment')", name='ck_tx_reason'
        ),
        sa.CheckConstraint('delta_cents <> 0', name='ck_tx_delta_nonzero'),
        sa.ForeignKeyConstraint(['account_id'], ['deposit_accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_tx_account_time', 'deposit_transactions', ['account_id', 'created_at'])
    op.create_index('idx_tx_ref', 'deposit_transactions', ['ref_table', 'ref_id'])

    # ============================================================================
    # Loan cycle
    # ============================================================================
    op.create_table(
        'checkouts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=False),
        sa.Column('retailer_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('checkout_time', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('due_back_days', sa.Integer(), nullable=False, server_default='7'),
        sa.Column('is_open', sa.Boolean(), nullable=False),
        sa.CheckConstraint('due_back_days >= 0', name='ck_co_due_nonnegative'),
        sa.ForeignKeyConstraint(['instance_id'], ['packaging_instances.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['retailer_id'], ['retailers.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_co_instance', 'checkouts', ['instance_id'])
    op.create_index('idx_co_customer_time', 'checkouts', ['customer_id', 'checkout_time'])
    # At most one open checkout per instance
    op.create_index(
        'uq_checkouts_open_instance', 'checkouts', ['instance_id'], unique=True,
        sqlite_where=sa.text('is_open = 1'),
        postgresql_where=sa.text('is_open'),
    )

    op.create_table(
        'returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('return_time', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('checkout_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['instance_id'], ['packaging_instances.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['checkout_id'], ['checkouts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('checkout_id', name='uq_returns_checkout'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_ret_instance_time', 'returns', ['instance_id', 'return_time'])
    op.create_index('idx_ret_location_time', 'returns', ['location_id', 'return_time'])

    # ============================================================================
    # Quality control
    # ============================================================================
    op.create_table(
        'wash_cycles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('hub_id', sa.Integer(), nullable=False),
        sa.Column('batch_code', sa.String(length=40), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('temp_c', sa.Numeric(5, 2), nullable=True),
        sa.Column('detergent', sa.String(length=40), nullable=True),
        sa.ForeignKeyConstraint(['hub_id'], ['hubs.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_wash_hub_time', 'wash_cycles', ['hub_id', 'start_time'])

    op.create_table(
        'wash_cycle_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('wash_id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['wash_id'], ['wash_cycles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['instance_id'], ['packaging_instances.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('wash_id', 'instance_id', name='uq_wash_items_wash_instance'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_wash_items_instance', 'wash_cycle_items', ['instance_id'])

    op.create_table(
        'inspections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=False),
        sa.Column('wash_id', sa.Integer(), nullable=True),
        sa.Column('inspector', sa.String(length=80), nullable=True),
        sa.Column('result', sa.String(length=12), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('inspected_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.CheckConstraint("result IN ('pass','fail')", name='ck_insp_result'),
        sa.ForeignKeyConstraint(['instance_id'], ['packaging_instances.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['wash_id'], ['wash_cycles.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_insp_instance_time', 'inspections', ['instance_id', 'inspected_at'])

    op.create_table(
        'contamination_incidents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False),
        sa.Column('severity', sa.SmallInteger(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('detected_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.CheckConstraint("kind IN ('microbial','chemical','foreign_matter')", name='ck_contam_kind'),
        sa.CheckConstraint('severity BETWEEN 1 AND 5', name='ck_contam_severity'),
        sa.ForeignKeyConstraint(['instance_id'], ['packaging_instances.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_contam_instance_time', 'contamination_incidents', ['instance_id', 'detected_at'])

    # ============================================================================
    # Telemetry and custody
    # ============================================================================
    op.create_table(
        'sensor_readings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('sensor_type', sa.String(length=20), nullable=False),
        sa.Column('value', sa.Numeric(10, 3), nullable=False),
        sa.Column('measured_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.CheckConstraint("sensor_type IN ('temperature','shock','humidity')", name='ck_sr_type'),
        sa.ForeignKeyConstraint(['instance_id'], ['packaging_instances.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_sr_instance_time', 'sensor_readings', ['instance_id', 'measured_at'])
    op.create_index('idx_sr_location_time', 'sensor_readings', ['location_id', 'measured_at'])

    op.create_table(
        'movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('instance_id', sa.Integer(), nullable=False),
        sa.Column('from_loc_id', sa.Integer(), nullable=True),
        sa.Column('to_loc_id', sa.Integer(), nullable=True),
        sa.Column('moved_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('note', sa.String(length=120), nullable=True),
        sa.ForeignKeyConstraint(['instance_id'], ['packaging_instances.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['from_loc_id'], ['locations.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['to_loc_id'], ['locations.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_mv_instance_time', 'movements', ['instance_id', 'moved_at'])
    op.create_index('idx_mv_to_time', 'movements', ['to_loc_id', 'moved_at'])

    # ============================================================================
    # Audit sink: no foreign keys, survives entity deletion
    # ============================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=30), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=40), nullable=False),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('idx_audit_entity', 'audit_logs', ['entity_type', 'entity_id'])
    op.create_index('idx_audit_created', 'audit_logs', ['created_at'])

    # ============================================================================
    # Reporting views
    # ============================================================================
    op.execute(f"CREATE VIEW v_instance_last_location AS {LAST_LOCATION_SELECT}")
    op.execute(f"CREATE VIEW v_customer_balances AS {CUSTOMER_BALANCES_SELECT}")


def downgrade():
    """Drop all views and tables (destructive operation)."""
    op.execute("DROP VIEW IF EXISTS v_customer_balances")
    op.execute("DROP VIEW IF EXISTS v_instance_last_location")
    op.drop_table('audit_logs')
    op.drop_table('movements')
    op.drop_table('sensor_readings')
    op.drop_table('contamination_incidents')
    op.drop_table('inspections')
    op.drop_table('wash_cycle_items')
    op.drop_table('wash_cycles')
    op.drop_table('returns')
    op.drop_table('checkouts')
    op.drop_table('deposit_transactions')
    op.drop_table('deposit_accounts')
    op.drop_table('packaging_instances')
    op.drop_table('packaging_catalog')
    op.drop_table('customers')
    op.drop_table('hubs')
    op.drop_table('retailers')
    op.drop_table('locations')
