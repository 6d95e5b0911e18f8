from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from votebot.models.item import Actor


class Membership(BaseModel):
    """A resolved voting group. Excluded logins and bots are already removed."""

    model_config = ConfigDict(frozen=True)

    handle: str
    members: frozenset[Actor] = Field(default_factory=frozenset)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def logins(self) -> frozenset[str]:
        return frozenset(member.login for member in self.members)

    def has_login(self, login: str) -> bool:
        return login in self.logins


class AlternateMap(BaseModel):
    """Primary login -> substitute identity, scoped to one voting group."""

    model_config = ConfigDict(frozen=True)

    group: str
    delegates: dict[str, Actor] = Field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.delegates)

    def delegate_for(self, login: str) -> Actor | None:
        return self.delegates.get(login)
