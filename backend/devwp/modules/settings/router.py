import asyncio
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends

from devwp.core.context import AppContext, get_context
from devwp.core.errors import StoreError
from devwp.modules.settings.schemas import SettingResult, SettingValue

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/settings",
    tags=["Settings"]
)

# Reads fall back to safe defaults, writes report {success, error}


@router.get("", response_model=Dict[str, str])
async def get_all_settings(context: AppContext = Depends(get_context)):
    try:
        return await asyncio.to_thread(context.store.list_settings)
    except StoreError as e:
        logger.warning("Error getting all settings: %s", e.diagnostic)
        return {}


@router.get("/webroot-path")
async def get_webroot_path(context: AppContext = Depends(get_context)):
    return await asyncio.to_thread(context.store.get_webroot_path)


@router.get("/xdebug-enabled")
async def get_xdebug_enabled(context: AppContext = Depends(get_context)):
    return await asyncio.to_thread(context.store.get_xdebug_enabled)


@router.get("/{key}", response_model=Optional[str])
async def get_setting(key: str, context: AppContext = Depends(get_context)):
    try:
        return await asyncio.to_thread(context.store.get_setting, key)
    except StoreError as e:
        logger.warning("Error getting setting %s: %s", key, e.diagnostic)
        return None


@router.put("/{key}", response_model=SettingResult)
async def save_setting(key: str, payload: SettingValue, context: AppContext = Depends(get_context)):
    try:
        await asyncio.to_thread(context.store.save_setting, key, payload.value)
    except StoreError as e:
        return SettingResult(success=False, error=str(e))
    return SettingResult(success=True)


@router.delete("/{key}", response_model=SettingResult)
async def delete_setting(key: str, context: AppContext = Depends(get_context)):
    try:
        await asyncio.to_thread(context.store.delete_setting, key)
    except StoreError as e:
        return SettingResult(success=False, error=str(e))
    return SettingResult(success=True)
