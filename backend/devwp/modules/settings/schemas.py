from typing import Optional

from pydantic import BaseModel


class SettingValue(BaseModel):
    value: str


class SettingResult(BaseModel):
    success: bool
    error: Optional[str] = None
