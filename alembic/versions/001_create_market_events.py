"""001: create market_events table

Revision ID: 001
Revises:
Create Date: 2026-10-15
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE market_events (
            id              BIGSERIAL       PRIMARY KEY,
            market_id       VARCHAR(64)     NOT NULL,
            seq             BIGINT          NOT NULL,
            event_type      VARCHAR(30)     NOT NULL,
            payload         JSONB           NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_market_events_seq UNIQUE (market_id, seq),
            CONSTRAINT ck_market_event_type CHECK (
                event_type IN (
                    'MARKET_INITIALIZED',
                    'BUY_EXECUTED',
                    'MIGRATED',
                    'LEVERAGE_ACTIVATED',
                    'POSITION_OPENED',
                    'POSITION_CLOSED',
                    'POSITION_LIQUIDATED',
                    'REBALANCED',
                    'MARKET_RESOLVED',
                    'WINNINGS_CLAIMED',
                    'UNCLAIMED_SWEPT',
                    'AUTHORITY_ROTATED'
                )
            )
        );
    """)
    op.execute("CREATE INDEX idx_market_events_type ON market_events (market_id, event_type);")
    op.execute(
        "CREATE INDEX idx_market_events_trader ON market_events "
        "USING GIN ((payload->'trader'));"
    )
    op.execute("COMMENT ON TABLE market_events IS 'Market engine event log — append-only';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS market_events CASCADE;")
