import logging
from contextlib import aclosing

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from devwp.core.context import AppContext, get_context
from devwp.core.errors import DevWPError
from devwp.modules.wpcli.schemas import WpCliRequest, WpCliResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WP-CLI"])


@router.post("/wp-cli", response_model=WpCliResult)
async def run_wp_cli(payload: WpCliRequest, context: AppContext = Depends(get_context)):
    return await context.wordpress.run_wp_cli(payload.site, payload.command)


@router.websocket("/ws/wp-cli")
async def wp_cli_stream(websocket: WebSocket, context: AppContext = Depends(get_context)):
    """
    Client sends one {"site", "command"} message, then receives
    {"type": "stdout"|"stderr", "data"} lines and a final {"type": "exit", "code"}.
    """
    await websocket.accept()

    try:
        request = WpCliRequest(**await websocket.receive_json())
        async with aclosing(context.wordpress.stream_wp_cli(request.site, request.command)) as events:
            async for event in events:
                await websocket.send_json(event.as_dict())
    except WebSocketDisconnect:
        # Closing the stream kills the wp process
        logger.debug("wp-cli client disconnected")
        return
    except (DevWPError, ValueError) as e:
        logger.error("wp-cli stream failed: %s", e)
        await websocket.send_json({"type": "error", "data": str(e)})

    await websocket.close()
