"""Knowledge core: knowledge_document, knowledge_chunk, rag_prompt

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSIONS = 1536


def upgrade() -> None:
    """Create knowledge tables with indexes and constraints."""

    bind = op.get_bind()
    is_postgresql = bind.dialect.name == 'postgresql'

    if is_postgresql:
        op.execute('CREATE EXTENSION IF NOT EXISTS vector')
        from pgvector.sqlalchemy import Vector
        uuid_type = postgresql.UUID(as_uuid=True)
        vector_type = Vector(EMBEDDING_DIMENSIONS)
        json_type = postgresql.JSONB()
    else:
        uuid_type = sa.String(36)
        vector_type = sa.JSON()
        json_type = sa.JSON()

    op.create_table(
        'knowledge_document',
        sa.Column('document_id', uuid_type, primary_key=True),
        sa.Column('scope', sa.String(16), nullable=False),
        sa.Column('owner_id', uuid_type, nullable=True),
        sa.Column('kind', sa.String(32), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('source_url', sa.Text(), nullable=True),
        sa.Column('doc_metadata', json_type, nullable=False),
        sa.Column('singleton_key', sa.String(128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('singleton_key', name='uq_knowledge_document_singleton'),
    )
    op.create_index('idx_knowledge_document_scope', 'knowledge_document', ['scope', 'owner_id'])
    op.create_index('ix_knowledge_document_owner_id', 'knowledge_document', ['owner_id'])

    op.create_table(
        'knowledge_chunk',
        sa.Column('chunk_id', uuid_type, primary_key=True),
        sa.Column('document_id', uuid_type, nullable=False),
        sa.Column('scope', sa.String(16), nullable=False),
        sa.Column('owner_id', uuid_type, nullable=True),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('embedding', vector_type, nullable=False),
        sa.Column('token_estimate', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['document_id'], ['knowledge_document.document_id'], ondelete='CASCADE'
        ),
        sa.UniqueConstraint('document_id', 'seq', name='uq_knowledge_chunk_doc_seq'),
    )
    op.create_index('idx_knowledge_chunk_scope', 'knowledge_chunk', ['scope', 'owner_id'])
    op.create_index('ix_knowledge_chunk_owner_id', 'knowledge_chunk', ['owner_id'])

    if is_postgresql:
        op.execute(
            'CREATE INDEX idx_knowledge_chunk_embedding ON knowledge_chunk '
            'USING hnsw (embedding vector_cosine_ops)'
        )

    op.create_table(
        'rag_prompt',
        sa.Column('prompt_id', uuid_type, primary_key=True),
        sa.Column('name', sa.String(128), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('idx_rag_prompt_active', 'rag_prompt', ['is_active', 'updated_at'])


def downgrade() -> None:
    """Drop knowledge tables in reverse order."""
    op.drop_index('idx_rag_prompt_active', table_name='rag_prompt')
    op.drop_table('rag_prompt')

    op.execute('DROP INDEX IF EXISTS idx_knowledge_chunk_embedding')
    op.drop_index('ix_knowledge_chunk_owner_id', table_name='knowledge_chunk')
    op.drop_index('idx_knowledge_chunk_scope', table_name='knowledge_chunk')
    op.drop_table('knowledge_chunk')

    op.drop_index('ix_knowledge_document_owner_id', table_name='knowledge_document')
    op.drop_index('idx_knowledge_document_scope', table_name='knowledge_document')
    op.drop_table('knowledge_document')
