"""Typed views over champion-select payloads from the local client.

The client speaks camelCase JSON; models use snake_case attributes with
camelCase aliases so that ``model_validate(raw)`` accepts the wire payload
directly and ``model_dump(by_alias=True)`` produces it again. Snapshots are
frozen: a new snapshot replaces the old one wholesale.
"""

import logging
from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .lcu_constants import ACTION_BAN, ACTION_PICK

logger = logging.getLogger(__name__)


class _LcuModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class TeamMember(_LcuModel):
    cell_id: int
    champion_id: int = 0
    champion_pick_intent: int = 0
    assigned_position: str = ""
    summoner_id: int = 0


class ChampSelectAction(_LcuModel):
    id: int
    actor_cell_id: int
    type: str
    champion_id: int = 0
    completed: bool = False
    is_in_progress: bool = False

    @property
    def is_pick(self) -> bool:
        return self.type == ACTION_PICK

    @property
    def is_ban(self) -> bool:
        return self.type == ACTION_BAN


class Bans(_LcuModel):
    my_team_bans: list[int] = Field(default_factory=list)
    their_team_bans: list[int] = Field(default_factory=list)


class ChampSelectTimer(_LcuModel):
    phase: str = ""
    adjusted_time_left_in_phase: int = 0


class ChampSelectSession(_LcuModel):
    local_player_cell_id: int = -1
    my_team: list[TeamMember] = Field(default_factory=list)
    their_team: list[TeamMember] = Field(default_factory=list)
    bans: Bans = Field(default_factory=Bans)
    actions: list[list[ChampSelectAction]] = Field(default_factory=list)
    timer: ChampSelectTimer | None = None

    def local_player(self) -> TeamMember | None:
        for member in self.my_team:
            if member.cell_id == self.local_player_cell_id:
                return member
        return None

    def iter_actions(self) -> Iterator[ChampSelectAction]:
        for group in self.actions:
            yield from group

    def local_actions(self) -> list[ChampSelectAction]:
        return [a for a in self.iter_actions() if a.actor_cell_id == self.local_player_cell_id]

    def all_actions_completed(self) -> bool:
        # An empty action list (e.g. practice tool) never counts as "all done".
        actions = list(self.iter_actions())
        return bool(actions) and all(a.completed for a in actions)

    def picked_champion_ids(self, *, exclude_cell_id: int | None = None) -> set[int]:
        return {
            m.champion_id
            for m in (*self.my_team, *self.their_team)
            if m.champion_id > 0 and m.cell_id != exclude_cell_id
        }

    def banned_champion_ids(self) -> set[int]:
        banned = {c for c in (*self.bans.my_team_bans, *self.bans.their_team_bans) if c > 0}
        banned.update(
            a.champion_id for a in self.iter_actions()
            if a.is_ban and a.completed and a.champion_id > 0
        )
        return banned

    def teammate_intents(self) -> set[int]:
        return {
            m.champion_pick_intent
            for m in self.my_team
            if m.champion_pick_intent > 0 and m.cell_id != self.local_player_cell_id
        }


class TeamComposition(_LcuModel):
    champion_ids: list[int] = Field(default_factory=list)
    all_locked: bool = False
    in_finalization: bool = False
    time_left_ms: int = 0


def parse_session(raw: Any) -> ChampSelectSession | None:
    """Validate a raw session payload; None for missing or malformed data."""
    if isinstance(raw, ChampSelectSession):
        return raw
    if not isinstance(raw, dict):
        return None
    try:
        return ChampSelectSession.model_validate(raw)
    except ValidationError as exc:
        logger.debug("Ignoring malformed champ select session: %s", exc)
        return None
