"""
Commodity registry: durable mapping from identity code to canonical name,
group and numeric id.

The registry is the only writer of commodity identities. It keeps an
in-memory index loaded from the store and serializes mints behind a
single writer lock. Across processes, the unique constraints on
``name_key`` and ``code`` act as a compare-and-swap: a writer that loses
the race reloads and returns the winner's identity.
"""

from typing import Dict, List, Optional
from pathlib import Path
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from pydantic import ValidationError
import asyncio
import json
import logging
import os
import re
import tempfile

from core.config import settings
from core.exceptions import RegistryLoadError, RegistryWriteError, SnapshotFormatError
from models.registry import CommodityGroup, CommodityIdentity
from schemas.registry import (
    IdentityRecord,
    RegistrySnapshot,
    SnapshotData,
    SnapshotGroup,
    SnapshotCommodity,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def name_key(name: str) -> str:
    """Case-insensitive comparison key"""
    return name.lower().strip()


def compact_key(name: str) -> str:
    """Comparison key with all whitespace removed ("Green Gram" == "GreenGram")"""
    return _WHITESPACE.sub("", name.lower())


class CommodityRegistry:
    """
    Registry of commodity identities.

    Contract:
    - lookup(name) -> identity or None (case-insensitive exact name)
    - mint(name) -> identity (persisted when possible, returned regardless)

    Mint durability is best-effort: when the write fails the identity is
    still returned and kept for the rest of this process, but a later
    process may mint a different code for the same name.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        code_prefix: Optional[str] = None,
        default_group_id: Optional[int] = None,
        default_group_name: Optional[str] = None,
        max_mint_attempts: Optional[int] = None,
        snapshot_path: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.code_prefix = code_prefix or settings.REGISTRY_CODE_PREFIX
        self.default_group_id = (
            default_group_id if default_group_id is not None else settings.REGISTRY_DEFAULT_GROUP_ID
        )
        self.default_group_name = default_group_name or settings.REGISTRY_DEFAULT_GROUP_NAME
        self.max_mint_attempts = max_mint_attempts or settings.REGISTRY_MINT_MAX_ATTEMPTS
        self.snapshot_path = snapshot_path or settings.REGISTRY_SNAPSHOT_PATH

        self._lock = asyncio.Lock()
        self._identities: Dict[str, IdentityRecord] = {}
        self._groups: Dict[int, str] = {}
        self._by_key: Dict[str, IdentityRecord] = {}
        self._by_compact: Dict[str, IdentityRecord] = {}
        self.loaded = False
        self.minted_count = 0

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def _remember(self, identity: IdentityRecord):
        self._identities[identity.code] = identity
        # First registered entry owns a key; later duplicates never shadow it
        self._by_key.setdefault(name_key(identity.name), identity)
        self._by_compact.setdefault(compact_key(identity.name), identity)

    def _reset(self):
        self._identities = {}
        self._groups = {}
        self._by_key = {}
        self._by_compact = {}

    def lookup(self, name: Optional[str]) -> Optional[IdentityRecord]:
        if not name:
            return None
        return self._by_key.get(name_key(name))

    def lookup_compact(self, name: Optional[str]) -> Optional[IdentityRecord]:
        if not name:
            return None
        return self._by_compact.get(compact_key(name))

    def get(self, code: str) -> Optional[IdentityRecord]:
        return self._identities.get(code)

    def identities(self) -> List[IdentityRecord]:
        return list(self._identities.values())

    def __len__(self) -> int:
        return len(self._identities)

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    async def load(self):
        """
        (Re)load groups and identities from the store.

        Raises:
            RegistryLoadError: If the store cannot be read
        """
        try:
            async with self.session_factory() as session:
                groups = (await session.execute(
                    select(CommodityGroup).order_by(CommodityGroup.id)
                )).scalars().all()
                rows = (await session.execute(
                    select(CommodityIdentity).order_by(CommodityIdentity.id)
                )).scalars().all()
        except (SQLAlchemyError, OSError) as e:
            raise RegistryLoadError(
                "Failed to read commodity registry",
                context={"operation": "load"},
                original_exception=e
            )

        # Unsaved mints from this process survive a reload
        unsaved = [i for i in self._identities.values() if not i.persisted]

        self._reset()
        for group in groups:
            self._groups[group.id] = group.name
        for row in rows:
            self._remember(IdentityRecord(
                code=row.code,
                name=row.name,
                numeric_id=row.id,
                group_id=row.group_id,
            ))
        for identity in unsaved:
            if identity.code not in self._identities:
                self._remember(identity)

        self.loaded = True
        logger.info(f"Loaded commodity registry: {len(rows)} identities, {len(groups)} groups")

    def _next_identity(self, name: str) -> IdentityRecord:
        max_id = 0
        max_suffix = 0
        for identity in self._identities.values():
            max_id = max(max_id, identity.numeric_id)
            if identity.code.startswith(self.code_prefix):
                suffix = identity.code[len(self.code_prefix):]
                if suffix.isdigit():
                    max_suffix = max(max_suffix, int(suffix))

        return IdentityRecord(
            code=f"{self.code_prefix}{max_suffix + 1}",
            name=name,
            numeric_id=max_id + 1,
            group_id=self.default_group_id,
        )

    async def _persist(self, identity: IdentityRecord):
        async with self.session_factory() as session:
            if identity.group_id not in self._groups:
                session.add(CommodityGroup(id=identity.group_id, name=self.default_group_name))
            session.add(CommodityIdentity(
                id=identity.numeric_id,
                code=identity.code,
                name=identity.name,
                name_key=name_key(identity.name),
                group_id=identity.group_id,
            ))
            await session.commit()
        self._groups.setdefault(identity.group_id, self.default_group_name)

    async def mint(self, name: str) -> IdentityRecord:
        """
        Create and persist a new identity for ``name``.

        The name is kept exactly as given. Numeric id is max + 1 and the
        code is prefix + (max numeric suffix + 1).
        """
        async with self._lock:
            existing = self.lookup(name)
            if existing:
                return existing

            for attempt in range(1, self.max_mint_attempts + 1):
                identity = self._next_identity(name)
                try:
                    await self._persist(identity)
                except IntegrityError:
                    logger.warning(
                        f"Concurrent registry write while minting '{name}' as {identity.code} "
                        f"(attempt {attempt}); reloading"
                    )
                    await self.load()
                    existing = self.lookup(name)
                    if existing:
                        return existing
                    continue
                except (SQLAlchemyError, OSError) as e:
                    return self._keep_unsaved(identity, attempt, e)

                self._remember(identity)
                self.minted_count += 1
                logger.info(f"Minted commodity identity {identity.code} for '{name}'")
                self._write_snapshot_file()
                return identity

            return self._keep_unsaved(self._next_identity(name), self.max_mint_attempts, None)

    def _keep_unsaved(
        self,
        identity: IdentityRecord,
        attempt: int,
        cause: Optional[Exception]
    ) -> IdentityRecord:
        error = RegistryWriteError(
            "Minted identity was not persisted",
            context={"commodity_name": identity.name, "code": identity.code, "attempt": attempt},
            original_exception=cause
        )
        logger.error(str(error), extra={"error_context": error.to_dict()})

        unsaved = IdentityRecord(
            code=identity.code,
            name=identity.name,
            numeric_id=identity.numeric_id,
            group_id=identity.group_id,
            persisted=False,
        )
        self._remember(unsaved)
        self.minted_count += 1
        return unsaved

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @staticmethod
    def read_snapshot(path: str) -> RegistrySnapshot:
        """
        Parse a registry snapshot file.

        Raises:
            SnapshotFormatError: If the file is missing, not JSON, or misshapen
        """
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
            return RegistrySnapshot(**raw)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            raise SnapshotFormatError(
                "Invalid registry snapshot",
                context={"path": str(path)},
                original_exception=e
            )

    def export_snapshot(self) -> RegistrySnapshot:
        """Current registry in the collaborator snapshot shape"""
        return RegistrySnapshot(data=SnapshotData(
            cmdt_group_data=[
                SnapshotGroup(id=group_id, cmdt_grp_name=group_name)
                for group_id, group_name in sorted(self._groups.items())
            ],
            cmdt_data=[
                SnapshotCommodity(
                    cmdt_id=identity.numeric_id,
                    cmdt_name=identity.name,
                    cmdt_group_id=identity.group_id,
                    uuiq=identity.code,
                )
                for identity in self._identities.values()
            ],
        ))

    def _write_snapshot_file(self):
        """Rewrite the snapshot file atomically, if one is configured"""
        if not self.snapshot_path:
            return

        target = Path(self.snapshot_path)
        payload = json.dumps(self.export_snapshot().dict(), indent=4)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_path, target)
        except OSError as e:
            logger.error(f"Failed to write registry snapshot {target}: {e}")

    async def import_snapshot(self, snapshot: RegistrySnapshot) -> int:
        """
        Seed the registry from a snapshot.

        Existing codes are never rewritten; an entry whose name is already
        registered under another code is skipped.

        Returns:
            Number of identities inserted
        """
        if not self.loaded:
            await self.load()

        inserted = 0
        async with self._lock:
            known_codes = set(self._identities)
            known_keys = set(self._by_key)
            known_ids = {i.numeric_id for i in self._identities.values()}

            try:
                async with self.session_factory() as session:
                    for group in snapshot.data.cmdt_group_data:
                        existing_group = await session.get(CommodityGroup, group.id)
                        if existing_group is None:
                            session.add(CommodityGroup(id=group.id, name=group.cmdt_grp_name))
                        else:
                            existing_group.name = group.cmdt_grp_name

                    for entry in snapshot.data.cmdt_data:
                        key = name_key(entry.cmdt_name)
                        if entry.uuiq in known_codes:
                            continue
                        if key in known_keys:
                            logger.warning(
                                f"Snapshot entry {entry.uuiq} '{entry.cmdt_name}' skipped: "
                                f"name already registered"
                            )
                            continue
                        if entry.cmdt_id in known_ids:
                            logger.warning(
                                f"Snapshot entry {entry.uuiq} skipped: numeric id {entry.cmdt_id} in use"
                            )
                            continue

                        session.add(CommodityIdentity(
                            id=entry.cmdt_id,
                            code=entry.uuiq,
                            name=entry.cmdt_name,
                            name_key=key,
                            group_id=entry.cmdt_group_id,
                        ))
                        known_codes.add(entry.uuiq)
                        known_keys.add(key)
                        known_ids.add(entry.cmdt_id)
                        inserted += 1

                    await session.commit()
            except (SQLAlchemyError, OSError) as e:
                raise RegistryWriteError(
                    "Failed to import registry snapshot",
                    context={"entries": len(snapshot.data.cmdt_data)},
                    original_exception=e
                )

            await self.load()
        logger.info(f"Imported {inserted} commodity identities from snapshot")
        return inserted
