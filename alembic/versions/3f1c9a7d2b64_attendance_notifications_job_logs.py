"""attendance, notifications and job logs

Revision ID: 3f1c9a7d2b64
Revises: 
Create Date: 2026-10-18 09:12:41.503118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b64'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # employees belongs to the directory; created here only when missing
    bind = op.get_bind()
    if not sa.inspect(bind).has_table('employees'):
        op.create_table(
            'employees',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('full_name', sa.String(), nullable=False),
            sa.Column('email', sa.String(), nullable=True),
            sa.Column('role', sa.String(), nullable=False, server_default='staff'),
            sa.Column('status', sa.String(), nullable=False, server_default='active'),
        )

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('check_in_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('check_out_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_late', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('minutes_late', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('check_in_location', sa.JSON(), nullable=True),
        sa.Column('check_out_location', sa.JSON(), nullable=True),
        sa.Column('total_hours', sa.Float(), nullable=True),
        sa.Column('checkout_reminder_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('employee_id', 'date', name='uq_attendance_employee_date'),
    )
    op.create_index('ix_attendance_records_employee_id', 'attendance_records', ['employee_id'])
    op.create_index('ix_attendance_records_date', 'attendance_records', ['date'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('related_id', sa.String(), nullable=True),
        sa.Column('action_url', sa.String(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_dedup', 'notifications', ['user_id', 'type', 'related_id', 'created_at'])

    op.create_table(
        'job_execution_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_name', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('records_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('job_metadata', sa.JSON(), nullable=True),
    )
    op.create_index('ix_job_execution_logs_job_name', 'job_execution_logs', ['job_name'])
    op.create_index('ix_job_execution_logs_start_time', 'job_execution_logs', ['start_time'])


def downgrade() -> None:
    op.drop_table('job_execution_logs')
    op.drop_table('notifications')
    op.drop_table('attendance_records')
