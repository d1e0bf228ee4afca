import asyncio
import platform
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from devwp.core.config import APP_VERSION
from devwp.core.context import AppContext, get_context
from devwp.system.desktop_manager import list_directories, open_target

router = APIRouter(
    prefix="/system",
    tags=["System"]
)


class OpenRequest(BaseModel):
    target: str


@router.get("/info")
def get_app_info(context: AppContext = Depends(get_context)):
    return {
        "version": APP_VERSION,
        "log_dir": str(context.log_dir),
        "platform": platform.system(),
        "verbose": context.verbose,
    }


@router.post("/open")
async def open_in_desktop(payload: OpenRequest, context: AppContext = Depends(get_context)):
    kind = await open_target(payload.target, runner=context.runner)
    return {"success": True, "opened": kind}


@router.get("/directories")
async def pick_directory(path: Optional[str] = Query(default=None)):
    return await asyncio.to_thread(list_directories, path)
