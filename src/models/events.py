from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, Field


class Event(BaseModel):
    name: ClassVar[str] = ""

    def to_message(self) -> Dict[str, Any]:
        return {"event": self.name, "payload": self.model_dump()}


class OptimizationStart(Event):
    name: ClassVar[str] = "optimization-start"


class OptimizationComplete(Event):
    name: ClassVar[str] = "optimization-complete"

    original_size: int = Field(ge=0)
    new_size: int = Field(ge=0)


class SetAutoStart(BaseModel):
    enabled: bool


class CommandResult(BaseModel):
    ok: bool = True
    error: Optional[str] = None
