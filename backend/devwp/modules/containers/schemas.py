from typing import Optional

from pydantic import BaseModel


class Container(BaseModel):
    id: str
    name: str
    state: str
    version: Optional[str] = None


# Progress of `docker compose up`: starting -> progress/error ... -> complete/error
class DockerStatusEvent(BaseModel):
    status: str
    message: str
    code: Optional[int] = None


class RestartResult(BaseModel):
    success: bool
