"""Widen user id columns to hold gateway-issued ids up to 128 characters

Revision ID: 002_widen_user_ids
Revises: 001_lifecycle_tables
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002_widen_user_ids"
down_revision: Union[str, None] = "001_lifecycle_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# (table, column, nullable)
_USER_ID_COLUMNS = [
    ("shipments", "shipper_id", False),
    ("shipments", "assigned_carrier_id", True),
    ("bids", "carrier_id", False),
    ("shipment_status_history", "actor_id", False),
    ("notifications", "user_id", False),
]


def _resize(length: int, previous: int) -> None:
    for table, column, nullable in _USER_ID_COLUMNS:
        with op.batch_alter_table(table) as batch_op:
            batch_op.alter_column(
                column,
                existing_type=sa.String(length=previous),
                type_=sa.String(length=length),
                existing_nullable=nullable,
            )


def upgrade() -> None:
    _resize(128, 36)


def downgrade() -> None:
    _resize(36, 128)
