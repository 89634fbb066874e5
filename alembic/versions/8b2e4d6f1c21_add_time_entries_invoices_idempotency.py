"""add_time_entries_invoices_idempotency

Revision ID: 8b2e4d6f1c21
Revises: 3f1a9c2e7b10
Create Date: 2026-10-17 09:40:03.552901

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b2e4d6f1c21'
down_revision: Union[str, Sequence[str], None] = '3f1a9c2e7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'invoices',
        sa.Column('invoice_id', sa.String(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('currency', sa.String(), nullable=False),
        sa.Column('hourly_rate_cents', sa.Integer(), nullable=False),
        sa.Column('total_seconds', sa.BigInteger(), nullable=False),
        sa.Column('total_hours', sa.Float(), nullable=False),
        sa.Column('total_amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('line_items', sa.JSON(), nullable=False),
        sa.Column('time_entry_ids', sa.JSON(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('invoice_id'),
        sa.CheckConstraint("status IN ('pending', 'sent', 'paid')", name='ck_invoices_status'),
        sa.CheckConstraint('hourly_rate_cents > 0', name='ck_invoices_rate_positive'),
        sa.CheckConstraint('total_seconds >= 0', name='ck_invoices_total_seconds_nonnegative'),
        sa.CheckConstraint('total_amount_cents >= 0', name='ck_invoices_total_amount_nonnegative'),
    )
    op.create_index(op.f('ix_invoices_invoice_id'), 'invoices', ['invoice_id'], unique=False)
    op.create_index(op.f('ix_invoices_company_id'), 'invoices', ['company_id'], unique=False)
    op.create_index(op.f('ix_invoices_job_id'), 'invoices', ['job_id'], unique=False)
    op.create_index(op.f('ix_invoices_customer_id'), 'invoices', ['customer_id'], unique=False)

    op.create_table(
        'time_entries',
        sa.Column('time_entry_id', sa.String(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('clock_in_at', sa.DateTime(), nullable=False),
        sa.Column('clock_out_at', sa.DateTime(), nullable=True),
        sa.Column('clock_in_lat', sa.Float(), nullable=False),
        sa.Column('clock_in_lng', sa.Float(), nullable=False),
        sa.Column('clock_in_accuracy_m', sa.Float(), nullable=True),
        sa.Column('clock_in_distance_m', sa.Float(), nullable=False),
        sa.Column('geo_ok_in', sa.Boolean(), nullable=False),
        sa.Column('clock_out_lat', sa.Float(), nullable=True),
        sa.Column('clock_out_lng', sa.Float(), nullable=True),
        sa.Column('clock_out_accuracy_m', sa.Float(), nullable=True),
        sa.Column('clock_out_distance_m', sa.Float(), nullable=True),
        sa.Column('geo_ok_out', sa.Boolean(), nullable=True),
        sa.Column('radius_used_m', sa.Float(), nullable=False),
        sa.Column('approved', sa.Boolean(), nullable=False),
        sa.Column('approved_by', sa.String(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('requires_reapproval', sa.Boolean(), nullable=False),
        sa.Column('invoice_id', sa.String(), nullable=True),
        sa.Column('invoiced_at', sa.DateTime(), nullable=True),
        sa.Column('exception_tags', sa.JSON(), nullable=False),
        sa.Column('geofence_violation_distance_m', sa.Float(), nullable=True),
        sa.Column('auto_closed_reason', sa.String(), nullable=True),
        sa.Column('clock_in_event_id', sa.String(), nullable=False),
        sa.Column('clock_out_event_id', sa.String(), nullable=True),
        sa.Column('device_id', sa.String(), nullable=True),
        sa.Column('clock_out_device_id', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], name='fk_time_entries_employee_id'),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], name='fk_time_entries_job_id'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.invoice_id'], name='fk_time_entries_invoice_id'),
        sa.PrimaryKeyConstraint('time_entry_id'),
        sa.CheckConstraint(
            'clock_out_at IS NULL OR clock_out_at >= clock_in_at',
            name='ck_time_entries_clock_out_after_clock_in',
        ),
    )
    op.create_index(op.f('ix_time_entries_time_entry_id'), 'time_entries', ['time_entry_id'], unique=False)
    op.create_index(op.f('ix_time_entries_company_id'), 'time_entries', ['company_id'], unique=False)
    op.create_index(op.f('ix_time_entries_employee_id'), 'time_entries', ['employee_id'], unique=False)
    op.create_index(op.f('ix_time_entries_job_id'), 'time_entries', ['job_id'], unique=False)
    op.create_index(op.f('ix_time_entries_invoice_id'), 'time_entries', ['invoice_id'], unique=False)
    op.create_index(
        'ix_time_entries_company_employee_clock_in',
        'time_entries',
        ['company_id', 'employee_id', 'clock_in_at'],
        unique=False,
    )
    op.create_index(
        'ix_time_entries_open_clock_in',
        'time_entries',
        ['clock_out_at', 'clock_in_at'],
        unique=False,
    )
    # At most one open entry per (company, employee).
    op.create_index(
        'uq_time_entries_open',
        'time_entries',
        ['company_id', 'employee_id'],
        unique=True,
        postgresql_where=sa.text('clock_out_at IS NULL'),
        sqlite_where=sa.text('clock_out_at IS NULL'),
    )

    op.create_table(
        'idempotency_records',
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('operation', sa.String(), nullable=False),
        sa.Column('client_event_id', sa.String(), nullable=False),
        sa.Column('device_id', sa.String(), nullable=True),
        sa.Column('time_entry_id', sa.String(), nullable=True),
        sa.Column('result', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('key'),
    )
    op.create_index(op.f('ix_idempotency_records_company_id'), 'idempotency_records', ['company_id'], unique=False)
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_idempotency_records_expires_at'), table_name='idempotency_records')
    op.drop_index(op.f('ix_idempotency_records_company_id'), table_name='idempotency_records')
    op.drop_table('idempotency_records')
    op.drop_index('uq_time_entries_open', table_name='time_entries')
    op.drop_index('ix_time_entries_open_clock_in', table_name='time_entries')
    op.drop_index('ix_time_entries_company_employee_clock_in', table_name='time_entries')
    op.drop_index(op.f('ix_time_entries_invoice_id'), table_name='time_entries')
    op.drop_index(op.f('ix_time_entries_job_id'), table_name='time_entries')
    op.drop_index(op.f('ix_time_entries_employee_id'), table_name='time_entries')
    op.drop_index(op.f('ix_time_entries_company_id'), table_name='time_entries')
    op.drop_index(op.f('ix_time_entries_time_entry_id'), table_name='time_entries')
    op.drop_table('time_entries')
    op.drop_index(op.f('ix_invoices_customer_id'), table_name='invoices')
    op.drop_index(op.f('ix_invoices_job_id'), table_name='invoices')
    op.drop_index(op.f('ix_invoices_company_id'), table_name='invoices')
    op.drop_index(op.f('ix_invoices_invoice_id'), table_name='invoices')
    op.drop_table('invoices')
