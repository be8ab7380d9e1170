"""
Identity backfill for raw rows that were never resolved.

Uses the matching cascade only; nothing is minted. Useful after a
registry snapshot import, when names that previously had no match can
now be attached to an identity without waiting for a normalization run.
"""

from typing import Dict
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from models.raw_data import AgmarkRaw, EnamRaw
from normalization.resolver import IdentityResolver

logger = logging.getLogger(__name__)

# (model, commodity name column)
BACKFILL_TARGETS = (
    (AgmarkRaw, AgmarkRaw.cmdt_name),
    (EnamRaw, EnamRaw.commodity_name),
)


async def backfill_identities(db: AsyncSession, resolver: IdentityResolver) -> Dict[str, Dict[str, int]]:
    """
    Attach identities to raw rows whose commodity_code is null.

    Returns:
        Per-table stats: distinct names found, names matched, rows updated
    """
    if not resolver.registry.loaded:
        await resolver.registry.load()

    stats = {}
    for model, name_column in BACKFILL_TARGETS:
        table = model.__tablename__
        result = await db.execute(
            select(name_column)
            .where(model.commodity_code.is_(None), name_column.is_not(None))
            .distinct()
        )
        names = [name for name in result.scalars().all() if name]
        logger.info(f"{table}: {len(names)} distinct commodity names without identity")

        matched = 0
        rows_updated = 0
        for name in names:
            identity = resolver.match(name)
            if identity is None:
                continue

            update_result = await db.execute(
                update(model)
                .where(name_column == name, model.commodity_code.is_(None))
                .values(commodity_code=identity.code)
                .execution_options(synchronize_session=False)
            )
            matched += 1
            rows_updated += update_result.rowcount or 0

        await db.commit()
        logger.info(f"{table}: matched {matched} names, updated {rows_updated} rows")
        stats[table] = {"names": len(names), "matched": matched, "rows_updated": rows_updated}

    return stats
