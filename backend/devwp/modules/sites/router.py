from typing import List

from fastapi import APIRouter, Depends

from devwp.core.context import AppContext, get_context
from devwp.modules.sites.schemas import (
    SiteCreate,
    SiteCreateResult,
    SiteDeleteResult,
    SiteInfo,
    SiteRecord,
    SiteUpdate,
)

router = APIRouter(
    prefix="/sites",
    tags=["Sites"]
)


@router.get("", response_model=List[SiteInfo])
async def list_sites(context: AppContext = Depends(get_context)):
    return await context.sites.list_sites()


@router.post("", response_model=SiteCreateResult, status_code=201)
async def create_site(payload: SiteCreate, context: AppContext = Depends(get_context)):
    return await context.sites.create_site(payload)


@router.put("/{domain}", response_model=SiteRecord)
async def update_site(domain: str, payload: SiteUpdate, context: AppContext = Depends(get_context)):
    return await context.sites.update_site(domain, payload)


@router.delete("/{domain}", response_model=SiteDeleteResult)
async def delete_site(domain: str, context: AppContext = Depends(get_context)):
    return await context.sites.delete_site(domain)


@router.post("/{domain}/scan")
async def scan_site(domain: str, context: AppContext = Depends(get_context)):
    output = await context.sites.scan_site(domain)
    return {"success": True, "output": output}
