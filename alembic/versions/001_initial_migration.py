"""Initial migration

Revision ID: 001
Revises:
Create Date: 2024-06-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

ROLES = ('PATIENT', 'DOCTOR', 'ADMIN')
APPOINTMENT_STATUSES = (
    'PENDING', 'CONFIRMED', 'REJECTED', 'CANCELLED',
    'COMPLETED', 'NO_SHOW', 'RESCHEDULED', 'PENDING_PAYMENT'
)
SLOT_HOLDING = "status IN ('PENDING', 'CONFIRMED', 'PENDING_PAYMENT')"
OPEN_REQUESTS = "status IN ('PENDING', 'APPROVED')"
BALANCE_CREDIT = "kind = 'BALANCE_CREDIT'"


def upgrade() -> None:
    # Create subscription_plans table
    op.create_table(
        'subscription_plans',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration_in_days', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', name='planstatus'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_subscription_plans_name', 'subscription_plans', ['name'], unique=False)

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.Enum(*ROLES, name='role'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create doctor_profiles table
    op.create_table(
        'doctor_profiles',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('is_approved', sa.Boolean(), nullable=True),
        sa.Column('profile_completed', sa.Boolean(), nullable=True),
        sa.Column('slot_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('consultation_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('subscription_plan_id', sa.Uuid(), nullable=True),
        sa.Column('subscription_expires_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subscription_plan_id'], ['subscription_plans.id'], )
    )

    # Create appointments table
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('appointment_number', sa.String(length=50), nullable=False),
        sa.Column('doctor_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.String(length=5), nullable=False),
        sa.Column('appointment_end_time', sa.String(length=5), nullable=True),
        sa.Column('appointment_duration', sa.Integer(), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=True),
        sa.Column('timezone_offset', sa.Integer(), nullable=True),
        sa.Column('booking_type', sa.Enum('VISIT', 'ONLINE', name='bookingtype'), nullable=False),
        sa.Column('status', sa.Enum(*APPOINTMENT_STATUSES, name='appointmentstatus'), nullable=False),
        sa.Column('payment_status', sa.Enum('UNPAID', 'PAID', 'REFUNDED', name='paymentstatus'), nullable=False),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column('patient_notes', sa.Text(), nullable=True),
        sa.Column('clinic_name', sa.String(length=200), nullable=True),
        sa.Column('video_call_link', sa.String(length=500), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', sa.Uuid(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('is_rescheduled', sa.Boolean(), nullable=True),
        sa.Column('original_appointment_id', sa.Uuid(), nullable=True),
        sa.Column('reschedule_request_id', sa.Uuid(), nullable=True),
        sa.Column('reschedule_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['doctor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['patient_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['cancelled_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['original_appointment_id'], ['appointments.id'], ),
        sa.CheckConstraint(
            'appointment_duration >= 15 AND appointment_duration <= 120',
            name='check_appointment_duration'
        )
    )
    op.create_index('ix_appointments_appointment_number', 'appointments', ['appointment_number'], unique=True)
    op.create_index('ix_appointments_doctor_id', 'appointments', ['doctor_id'], unique=False)
    op.create_index('ix_appointments_patient_id', 'appointments', ['patient_id'], unique=False)
    op.create_index('ix_appointments_appointment_date', 'appointments', ['appointment_date'], unique=False)
    op.create_index('ix_appointments_created_at', 'appointments', ['created_at'], unique=False)
    # One slot-holding appointment per doctor, date and start time
    op.create_index(
        'uq_appointments_active_slot', 'appointments',
        ['doctor_id', 'appointment_date', 'appointment_time'],
        unique=True,
        postgresql_where=sa.text(SLOT_HOLDING),
        sqlite_where=sa.text(SLOT_HOLDING)
    )

    # Create transactions table
    op.create_table(
        'transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('appointment_id', sa.Uuid(), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.Enum('SUCCESS', 'FAILED', name='transactionstatus'), nullable=False),
        sa.Column('kind', sa.Enum('PAYMENT', 'BALANCE_CREDIT', name='transactionkind'), nullable=False),
        sa.Column('purpose', sa.String(length=50), nullable=True),
        sa.Column('provider', sa.String(length=50), nullable=True),
        sa.Column('reference', sa.String(length=200), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], )
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'], unique=False)
    op.create_index('ix_transactions_appointment_id', 'transactions', ['appointment_id'], unique=False)
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'], unique=False)
    op.create_index(
        'uq_transactions_appointment_credit', 'transactions', ['appointment_id'],
        unique=True,
        postgresql_where=sa.text(BALANCE_CREDIT),
        sqlite_where=sa.text(BALANCE_CREDIT)
    )

    # Create reschedule_requests table
    op.create_table(
        'reschedule_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('appointment_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('doctor_id', sa.Uuid(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('preferred_date', sa.Date(), nullable=True),
        sa.Column('preferred_time', sa.String(length=5), nullable=True),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'CANCELLED', name='reschedulestatus'),
            nullable=False
        ),
        sa.Column('original_appointment_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('reschedule_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('reschedule_fee_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('doctor_notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('new_appointment_id', sa.Uuid(), nullable=True),
        sa.Column('payment_transaction_id', sa.Uuid(), nullable=True),
        sa.Column('requested_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ),
        sa.ForeignKeyConstraint(['patient_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['doctor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['new_appointment_id'], ['appointments.id'], ),
        sa.ForeignKeyConstraint(['payment_transaction_id'], ['transactions.id'], )
    )
    op.create_index('ix_reschedule_requests_appointment_id', 'reschedule_requests', ['appointment_id'], unique=False)
    op.create_index('ix_reschedule_requests_patient_id', 'reschedule_requests', ['patient_id'], unique=False)
    op.create_index('ix_reschedule_requests_doctor_id', 'reschedule_requests', ['doctor_id'], unique=False)
    op.create_index('ix_reschedule_requests_created_at', 'reschedule_requests', ['created_at'], unique=False)
    # One open request per appointment
    op.create_index(
        'uq_reschedule_requests_open', 'reschedule_requests', ['appointment_id'],
        unique=True,
        postgresql_where=sa.text(OPEN_REQUESTS),
        sqlite_where=sa.text(OPEN_REQUESTS)
    )

    # Create video_sessions table
    op.create_table(
        'video_sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('appointment_id', sa.Uuid(), nullable=False),
        sa.Column('doctor_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('doctor_joined_at', sa.DateTime(), nullable=True),
        sa.Column('patient_joined_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('appointment_id'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ),
        sa.ForeignKeyConstraint(['doctor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['patient_id'], ['users.id'], )
    )

    # Create conversations table
    op.create_table(
        'conversations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('doctor_id', sa.Uuid(), nullable=False),
        sa.Column('patient_id', sa.Uuid(), nullable=False),
        sa.Column(
            'conversation_type',
            sa.Enum('DOCTOR_PATIENT', 'SUPPORT', name='conversationtype'),
            nullable=False
        ),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['doctor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['patient_id'], ['users.id'], )
    )
    op.create_index('ix_conversations_doctor_id', 'conversations', ['doctor_id'], unique=False)
    op.create_index('ix_conversations_patient_id', 'conversations', ['patient_id'], unique=False)
    op.create_index('ix_conversations_created_at', 'conversations', ['created_at'], unique=False)

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=True),
        sa.Column('appointment_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=True),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], )
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'], unique=False)
    op.create_index('ix_notifications_appointment_id', 'notifications', ['appointment_id'], unique=False)
    op.create_index('ix_notifications_action', 'notifications', ['action'], unique=False)
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'], unique=False)


def downgrade() -> None:
    # Drop all tables in reverse order of creation
    op.drop_table('notifications')
    op.drop_table('conversations')
    op.drop_table('video_sessions')
    op.drop_table('reschedule_requests')
    op.drop_table('transactions')
    op.drop_table('appointments')
    op.drop_table('doctor_profiles')
    op.drop_table('users')
    op.drop_table('subscription_plans')

    # Drop enums
    for name in (
        'conversationtype', 'reschedulestatus', 'transactionkind', 'transactionstatus',
        'paymentstatus', 'appointmentstatus', 'bookingtype', 'role', 'planstatus'
    ):
        op.execute(f'DROP TYPE IF EXISTS {name}')
