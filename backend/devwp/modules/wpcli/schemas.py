from typing import Optional

from pydantic import BaseModel


class WpCliRequest(BaseModel):
    site: str
    command: str


class WpCliResult(BaseModel):
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
