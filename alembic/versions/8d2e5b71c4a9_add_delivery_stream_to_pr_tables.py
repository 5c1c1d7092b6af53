"""add delivery_stream_id to pr_events and pr_cycles

Revision ID: 8d2e5b71c4a9
Revises: 3f9c1e7a2b40
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8d2e5b71c4a9'
down_revision: Union[str, None] = '3f9c1e7a2b40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLES = ('pr_events', 'pr_cycles')


def upgrade() -> None:
    # SQLite requires batch mode to add a foreign key.
    for table in TABLES:
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.add_column(sa.Column('delivery_stream_id', sa.Uuid(), nullable=True))
            batch_op.create_index(op.f(f'ix_{table}_delivery_stream_id'), ['delivery_stream_id'], unique=False)
            batch_op.create_foreign_key(
                f'fk_{table}_delivery_stream_id',
                'delivery_streams', ['delivery_stream_id'], ['id']
            )


def downgrade() -> None:
    for table in TABLES:
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.drop_constraint(f'fk_{table}_delivery_stream_id', type_='foreignkey')
            batch_op.drop_index(op.f(f'ix_{table}_delivery_stream_id'))
            batch_op.drop_column('delivery_stream_id')
