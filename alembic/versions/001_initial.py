"""Initial migration - create listing, action and profile tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create listing_source enum
    listing_source = postgresql.ENUM('EBAY', 'CRAIGSLIST', name='listingsource')
    listing_source.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'listings',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('source', postgresql.ENUM('EBAY', 'CRAIGSLIST', name='listingsource', create_type=False), nullable=False),
        sa.Column('external_id', sa.String(100), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('price_cents', sa.BigInteger(), nullable=True),
        sa.Column('price_text', sa.String(64), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('seller_name', sa.String(255), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('condition', sa.String(100), nullable=True),
        sa.Column('listing_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scraped_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index('idx_listings_url', 'listings', ['url'], unique=True)
    op.create_index('idx_listings_source', 'listings', ['source'])
    op.create_index('idx_listings_listing_date', 'listings', ['listing_date'])

    op.create_table(
        'user_listing_actions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('listing_id', sa.BigInteger(), nullable=False),
        sa.Column('starred', sa.Boolean(), nullable=True, default=False),
        sa.Column('hidden', sa.Boolean(), nullable=True, default=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index(
        'idx_user_listing_actions_user_listing',
        'user_listing_actions',
        ['user_id', 'listing_id'],
        unique=True
    )

    op.create_table(
        'profiles',
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('search_preferences', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('user_id')
    )


def downgrade() -> None:
    op.drop_table('profiles')
    op.drop_table('user_listing_actions')
    op.drop_table('listings')

    op.execute('DROP TYPE IF EXISTS listingsource')
