"""Add limit_documents for the SQL document store.

Revision ID: 5e1f0c7a9b32
Revises:
Create Date: 2026-10-18

One row per document of the hierarchical store (option sets, options and
legacy limits), keyed by the document's full path.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '5e1f0c7a9b32'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create limit_documents table."""
    op.create_table(
        'limit_documents',
        sa.Column('path', sa.String(), primary_key=True,
                  comment='products/{productId}/coverages/{coverageId}/...'),
        sa.Column('collection_path', sa.String(), nullable=False,
                  comment='Path of the parent collection'),
        sa.Column('document_id', sa.String(), nullable=False),
        sa.Column('data', postgresql.JSONB(), nullable=False,
                  comment='camelCase document fields'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
    )
    op.create_index('idx_limit_documents_collection', 'limit_documents', ['collection_path'])


def downgrade() -> None:
    """Drop limit_documents table."""
    op.drop_index('idx_limit_documents_collection', table_name='limit_documents')
    op.drop_table('limit_documents')
