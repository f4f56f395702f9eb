"""Lock record models.

A lock record freezes input name -> (locator, revision) so repeated runs
resolve to the same revisions.  It is serialised as JSON next to the
descriptor by ``shellsmith.engine.lockfile``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

LOCK_VERSION = 1


class LockedInput(BaseModel):
    locator: str
    revision: str


class LockRecord(BaseModel):
    version: int = LOCK_VERSION
    inputs: dict[str, LockedInput] = Field(default_factory=dict)

    def get(self, name: str) -> LockedInput | None:
        return self.inputs.get(name)

    def record(self, name: str, locator: str, revision: str) -> None:
        self.inputs[name] = LockedInput(locator=locator, revision=revision)
