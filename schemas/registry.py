"""
Commodity registry schemas: in-memory identities and the JSON snapshot format
"""

from pydantic import BaseModel, Field
from typing import List


class IdentityRecord(BaseModel):
    """
    A resolved commodity identity as handed to callers.

    persisted is False when the mint could not be written to the store;
    the identity is still usable for the current run.
    """
    code: str
    name: str
    numeric_id: int
    group_id: int
    persisted: bool = True

    class Config:
        frozen = True


# ============================================================================
# Snapshot format
# ============================================================================

class SnapshotGroup(BaseModel):
    id: int
    cmdt_grp_name: str


class SnapshotCommodity(BaseModel):
    cmdt_id: int
    cmdt_name: str
    cmdt_group_id: int
    uuiq: str


class SnapshotData(BaseModel):
    cmdt_group_data: List[SnapshotGroup] = Field(default_factory=list)
    cmdt_data: List[SnapshotCommodity] = Field(default_factory=list)


class RegistrySnapshot(BaseModel):
    """
    Registry snapshot as exchanged with collaborators:

        {"data": {"cmdt_group_data": [...], "cmdt_data": [...]}}

    Unknown keys are ignored.
    """
    data: SnapshotData = Field(default_factory=SnapshotData)
