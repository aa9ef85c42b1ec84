from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional
from enum import Enum


class ProcessState(str, Enum):
    RUNNING = "running"
    NOT_RUNNING = "not_running"


class ActionCommand(str, Enum):
    RUN = "run"
    STOP = "stop"
    INSTALL = "install"


class GatewayMessage(BaseModel):
    """Inbound socket envelope: event name plus free-form payload."""

    event: str
    data: Any = None


class JoinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bot_id: str = Field(alias="botId")


class ActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bot_id: str = Field(alias="botId")
    cmd: ActionCommand
    file: Optional[str] = None
    runtime_version: Optional[str] = Field(default=None, alias="runtimeVersion")
    port: Optional[int] = None


class CommandRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bot_id: str = Field(alias="botId")
    command: str


class ActionResult(BaseModel):
    ok: bool
    message: str


class BotSummary(BaseModel):
    name: str
    state: ProcessState
    pid: Optional[int] = None
