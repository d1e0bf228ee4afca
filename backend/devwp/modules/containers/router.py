import logging
from contextlib import aclosing
from typing import List

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from devwp.core.context import AppContext, get_context
from devwp.core.errors import DevWPError
from devwp.modules.containers.schemas import Container, RestartResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Containers"])


@router.get("/containers", response_model=List[Container])
async def get_container_status(context: AppContext = Depends(get_context)):
    return await context.docker.list_containers()


@router.post("/containers/{container_id}/restart", response_model=RestartResult)
async def restart_container(container_id: str, context: AppContext = Depends(get_context)):
    return RestartResult(success=await context.docker.restart(container_id))


@router.post("/containers/stop")
async def stop_containers(context: AppContext = Depends(get_context)):
    await context.docker.stop_group()
    return {"success": True}


@router.websocket("/ws/containers")
async def container_status_stream(websocket: WebSocket, context: AppContext = Depends(get_context)):
    """Pushes the container list after every poll until the client goes away."""
    await websocket.accept()
    interval = context.settings.poll_interval

    try:
        async with aclosing(context.docker.watch_containers(interval)) as snapshots:
            async for containers in snapshots:
                await websocket.send_json([c.model_dump() for c in containers])
    except WebSocketDisconnect:
        logger.debug("Container status client disconnected")


@router.websocket("/ws/containers/start")
async def start_containers_stream(websocket: WebSocket, context: AppContext = Depends(get_context)):
    await websocket.accept()

    try:
        async with aclosing(context.docker.stream_start_group()) as events:
            async for event in events:
                await websocket.send_json(event.model_dump(exclude_none=True))
    except WebSocketDisconnect:
        logger.debug("Start progress client disconnected")
        return
    except DevWPError as e:
        # Already reported to the client as an error event
        logger.error("Docker compose start failed: %s", e)

    await websocket.close()
