"""cost_hash_currency

Revision ID: 8d3b64c2e0f5
Revises: 5c1f0e7a9b21
Create Date: 2026-10-18 12:00:00.000000

"""

import hashlib
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from meridian.core.models import compute_cost_record_hash

# revision identifiers, used by Alembic.
revision: str = "8d3b64c2e0f5"
down_revision: str | None = "5c1f0e7a9b21"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

SELECT_RECORDS = sa.text(
    "SELECT id, provider, service, usage_date, resource_address, usage_type, currency FROM cost_records"
)
UPDATE_HASH = sa.text("UPDATE cost_records SET record_hash = :record_hash WHERE id = :id")


def upgrade() -> None:
    """Recompute record_hash with the currency included."""
    bind = op.get_bind()
    for row in bind.execute(SELECT_RECORDS).mappings().all():
        record_hash = compute_cost_record_hash(
            row["provider"], row["service"], row["usage_date"],
            row["resource_address"], row["usage_type"], row["currency"],
        )
        bind.execute(UPDATE_HASH, {"record_hash": record_hash, "id": row["id"]})


def downgrade() -> None:
    """Recompute record_hash without the currency.

    Fails on the unique constraint when two rows differ only by currency.
    """
    bind = op.get_bind()
    for row in bind.execute(SELECT_RECORDS).mappings().all():
        identity = "|".join([
            row["provider"].strip().lower(),
            row["service"].strip(),
            str(row["usage_date"]),
            (row["resource_address"] or "").strip(),
            (row["usage_type"] or "").strip(),
        ])
        bind.execute(UPDATE_HASH, {"record_hash": hashlib.sha256(identity.encode()).hexdigest(), "id": row["id"]})
