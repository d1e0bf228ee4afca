from typing import Optional

from pydantic import BaseModel


class XdebugStatus(BaseModel):
    enabled: bool


class XdebugEvent(BaseModel):
    status: str  # restarting, progress, complete, error
    enabled: Optional[bool] = None
    message: Optional[str] = None
