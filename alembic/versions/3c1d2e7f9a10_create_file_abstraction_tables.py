"""Create storage, file index and file metadata tables

Revision ID: 3c1d2e7f9a10
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '3c1d2e7f9a10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create sys_file_storage, sys_file and sys_file_metadata."""
    op.create_table(
        'sys_file_storage',
        sa.Column('uid', sa.Integer(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('driver', sa.Enum('LOCAL', 'S3', name='storagebackend'), nullable=False),
        sa.Column('base_uri', sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=False),
        sa.Column('public_base_url', sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False),
        sa.Column('is_writable', sa.Boolean(), nullable=False),
        sa.Column('is_online', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('uid')
    )

    op.create_table(
        'sys_file',
        sa.Column('uid', sa.Integer(), nullable=False),
        sa.Column('storage', sa.Integer(), nullable=False),
        sa.Column('identifier', sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=False),
        sa.Column('identifier_hash', sqlmodel.sql.sqltypes.AutoString(length=40), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('extension', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('mime_type', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column(
            'type',
            sa.Enum('UNKNOWN', 'TEXT', 'IMAGE', 'AUDIO', 'VIDEO', 'APPLICATION', name='filetype'),
            nullable=False
        ),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('sha1', sqlmodel.sql.sqltypes.AutoString(length=40), nullable=True),
        sa.Column('missing', sa.Integer(), nullable=False),
        sa.Column('creation_date', sa.Integer(), nullable=False),
        sa.Column('modification_date', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['storage'], ['sys_file_storage.uid']),
        sa.PrimaryKeyConstraint('uid'),
        sa.UniqueConstraint('storage', 'identifier_hash', name='uq_sys_file_storage_identifier')
    )
    op.create_index('ix_sys_file_storage', 'sys_file', ['storage'])

    op.create_table(
        'sys_file_metadata',
        sa.Column('uid', sa.Integer(), nullable=False),
        sa.Column('file', sa.Integer(), nullable=False),
        sa.Column('title', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('alternative', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('height', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['file'], ['sys_file.uid']),
        sa.PrimaryKeyConstraint('uid'),
        sa.UniqueConstraint('file')
    )


def downgrade() -> None:
    """Drop the file abstraction tables."""
    op.drop_table('sys_file_metadata')
    op.drop_index('ix_sys_file_storage', table_name='sys_file')
    op.drop_table('sys_file')
    op.drop_table('sys_file_storage')
