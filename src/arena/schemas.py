"""
Request models for the service facade.

Request handlers pass raw dicts (decoded JSON) or these models to
``ArenaService``; ``parse_request`` validates them and turns pydantic's
error into the engine's own InvalidRequest so callers only ever deal with
one error hierarchy.
"""

from typing import Annotated, Any, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from arena.errors import InvalidRequest

PlayerId = Annotated[str, Field(min_length=1, max_length=64, description="Player id")]


class ArenaRequest(BaseModel):
    """Base for every request: surrounding whitespace stripped, unknown keys rejected."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class JoinQueueRequest(ArenaRequest):
    """Put a player in a mode's matchmaking queue."""

    player_id: PlayerId
    mode: str = Field(..., min_length=1, description="Game mode to queue for")
    name: Optional[str] = Field(default=None, max_length=255, description="Display name")
    min_rating: Optional[int] = Field(default=None, ge=0, description="Lowest opponent rating accepted")
    max_rating: Optional[int] = Field(default=None, ge=0, description="Highest opponent rating accepted")

    @model_validator(mode="after")
    def validate_bounds(self) -> "JoinQueueRequest":
        if (
            self.min_rating is not None
            and self.max_rating is not None
            and self.min_rating > self.max_rating
        ):
            raise ValueError("min_rating must not exceed max_rating")
        return self


class LeaveQueueRequest(ArenaRequest):
    player_id: PlayerId
    mode: str = Field(..., min_length=1)


class ReportResultRequest(ArenaRequest):
    """Final result of a standalone or tournament match."""

    match_id: str = Field(..., min_length=1)
    winner_id: PlayerId
    scores: dict[str, int] = Field(default_factory=dict, description="Score per player id")
    tournament_id: Optional[str] = Field(
        default=None, description="Owning tournament; looked up from the match when omitted"
    )

    @field_validator("scores")
    @classmethod
    def validate_scores(cls, v: dict[str, int]) -> dict[str, int]:
        negative = sorted(player_id for player_id, score in v.items() if score < 0)
        if negative:
            raise ValueError(f"Scores must be non-negative: {negative}")
        return v


class CreateTournamentRequest(ArenaRequest):
    """New tournament. Omitted options fall back to configured defaults."""

    name: str = Field(..., min_length=1, max_length=255)
    roster: list[str] = Field(default_factory=list, description="Player ids in seed order")
    bracket_type: Optional[str] = Field(default=None)
    mode: Optional[str] = Field(default=None)
    seeding: Optional[str] = Field(default=None)
    auto_start: bool = Field(default=True)

    @field_validator("roster")
    @classmethod
    def validate_roster_ids(cls, v: list[str]) -> list[str]:
        stripped = [player_id.strip() for player_id in v]
        if any(not player_id for player_id in stripped):
            raise ValueError("Roster contains an empty player id")
        return stripped


class RecordActivityRequest(ArenaRequest):
    match_id: str = Field(..., min_length=1)
    player_id: PlayerId


RequestT = TypeVar("RequestT", bound=ArenaRequest)


def parse_request(model: type[RequestT], payload: Union[RequestT, dict[str, Any]]) -> RequestT:
    """
    Validate a raw payload into ``model``.

    Raises:
        InvalidRequest: with a compact list of field errors
    """
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        errors = [
            {"loc": ".".join(str(part) for part in error["loc"]), "msg": error["msg"]}
            for error in exc.errors()
        ]
        raise InvalidRequest(f"Invalid {model.__name__}", errors=errors) from exc
