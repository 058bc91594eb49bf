"""create users, pets, appointments and time_blocks with overlap exclusion

Revision ID: 3a1f9c2e7b10
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3a1f9c2e7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'user_role': ('owner', 'groomer'),
    'service_type': ('basic', 'full'),
    'appointment_status': ('confirmed', 'in_progress', 'completed', 'cancelled', 'no_show'),
    'pricing_status': ('pending', 'set'),
    'time_block_type': ('unavailable', 'break', 'lunch', 'personal', 'maintenance'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    # btree_gist lets a GiST exclusion constraint combine uuid equality with range overlap
    op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')

    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    # Reference tables
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', _enum('user_role'), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'pets',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('species', sa.String(20), nullable=False),
        sa.Column('breed', sa.String(100), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_pets_owner_id', 'pets', ['owner_id'])

    # Appointments
    op.create_table(
        'appointments',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('pet_id', sa.UUID(), nullable=False),
        sa.Column('owner_id', sa.UUID(), nullable=False),
        sa.Column('groomer_id', sa.UUID(), nullable=False),
        sa.Column('service_type', _enum('service_type'), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('end_time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', _enum('appointment_status'), nullable=False, server_default='confirmed'),
        sa.Column('groomer_acknowledged', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('auto_completed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('pricing_status', _enum('pricing_status'), nullable=False, server_default='pending'),
        sa.Column('total_cost', sa.Numeric(10, 2), nullable=True),
        sa.Column('price_history', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('actual_start_time', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('actual_end_time', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('actual_duration', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('photos', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        # Constraints
        sa.CheckConstraint('end_time > start_time', name='check_appointment_end_after_start'),
        sa.CheckConstraint('duration_minutes > 0', name='check_appointment_duration_positive'),

        # Primary key and foreign keys
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['pet_id'], ['pets.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['groomer_id'], ['users.id'], ondelete='RESTRICT'),
    )
    op.create_index('ix_appointments_pet_id', 'appointments', ['pet_id'])
    op.create_index('ix_appointments_owner_id', 'appointments', ['owner_id'])
    op.create_index('ix_appointments_groomer_id', 'appointments', ['groomer_id'])
    op.create_index('ix_appointments_start_time', 'appointments', ['start_time'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])
    op.create_index(
        'idx_appointments_groomer_time',
        'appointments',
        ['groomer_id', 'start_time', 'end_time']
    )

    # Only occupying appointments take part in the overlap exclusion
    op.execute("""
        ALTER TABLE appointments ADD CONSTRAINT excl_appointments_groomer_overlap
        EXCLUDE USING gist (groomer_id WITH =, tstzrange(start_time, end_time, '[)') WITH &&)
        WHERE (status IN ('confirmed', 'in_progress'))
    """)

    # Time blocks
    op.create_table(
        'time_blocks',
        sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('groomer_id', sa.UUID(), nullable=False),
        sa.Column('start_time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('end_time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('block_type', _enum('time_block_type'), nullable=False, server_default='unavailable'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('recurring_pattern', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('end_time > start_time', name='check_time_block_end_after_start'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['groomer_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_time_blocks_groomer_id', 'time_blocks', ['groomer_id'])
    op.create_index(
        'idx_time_blocks_groomer_time',
        'time_blocks',
        ['groomer_id', 'start_time', 'end_time']
    )
    op.execute("""
        ALTER TABLE time_blocks ADD CONSTRAINT excl_time_blocks_groomer_overlap
        EXCLUDE USING gist (groomer_id WITH =, tstzrange(start_time, end_time, '[)') WITH &&)
    """)


def downgrade() -> None:
    op.drop_table('time_blocks')
    op.drop_table('appointments')
    op.drop_table('pets')
    op.drop_table('users')

    for name in reversed(list(ENUMS)):
        op.execute(f'DROP TYPE IF EXISTS {name}')
