from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JoinSessionRequest(BaseModel):
    """Join payload. Each field falls back to its default on a wrong type."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session_id: str | None = Field(default=None, alias="sessionId")
    player_name: str = Field(default="", alias="playerName")
    create_new: bool = Field(default=False, alias="createNew")

    @field_validator("session_id", mode="before")
    @classmethod
    def session_id_or_none(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @field_validator("player_name", mode="before")
    @classmethod
    def player_name_or_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("create_new", mode="before")
    @classmethod
    def create_new_flag(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else False


class ChatMessageRequest(BaseModel):
    message: str


class ProgressUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    city_key: str = Field(alias="cityKey")
    progress: int


class SessionSummaryRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    player_count: int = Field(alias="playerCount")
    max_players: int = Field(alias="maxPlayers")
    created_at: str = Field(alias="createdAt")
    player_names: list[str] = Field(alias="playerNames")


class HealthRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    sessions: int
    connections: int
    server_time: str = Field(alias="serverTime")
