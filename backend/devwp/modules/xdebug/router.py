import logging
from contextlib import aclosing

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from devwp.core.context import AppContext, get_context
from devwp.modules.xdebug.schemas import XdebugStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Xdebug"])


@router.get("/xdebug/status", response_model=XdebugStatus)
async def get_xdebug_status(context: AppContext = Depends(get_context)):
    return XdebugStatus(enabled=await context.xdebug.get_status())


@router.post("/xdebug/toggle", response_model=XdebugStatus)
async def toggle_xdebug(context: AppContext = Depends(get_context)):
    return XdebugStatus(enabled=await context.xdebug.toggle())


@router.websocket("/ws/xdebug/toggle")
async def toggle_xdebug_stream(websocket: WebSocket, context: AppContext = Depends(get_context)):
    await websocket.accept()

    try:
        async with aclosing(context.xdebug.stream_toggle()) as events:
            async for event in events:
                await websocket.send_json(event.model_dump(exclude_none=True))
    except WebSocketDisconnect:
        logger.debug("Xdebug toggle client disconnected")
        return

    await websocket.close()
