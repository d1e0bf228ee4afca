import re
from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel

DOMAIN_PATTERN = re.compile(
    r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?(\.[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?)*$",
    re.IGNORECASE,
)


def is_valid_domain(value: str) -> bool:
    return bool(value) and DOMAIN_PATTERN.match(value) is not None


def split_aliases(aliases: Optional[str]) -> List[str]:
    if not aliases:
        return []
    return [a.strip() for a in aliases.split(" ") if a.strip()]


def check_domain(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("Domain is required")
    if not is_valid_domain(value):
        raise ValueError("Invalid domain format")
    return value


def check_aliases(value: str) -> str:
    aliases = split_aliases(value)
    for alias in aliases:
        if not is_valid_domain(alias):
            raise ValueError(f"Invalid alias: {alias}")
    return " ".join(aliases)


def check_web_root(value: str) -> str:
    value = value.strip().replace("\\", "/")
    if value.startswith("/") or re.match(r"^[a-zA-Z]:", value):
        raise ValueError("Web root must be relative to the site folder")
    parts = [p for p in value.split("/") if p]
    if any(p == ".." for p in parts):
        raise ValueError("Web root cannot leave the site folder")
    return "/".join(parts)


DomainName = Annotated[str, AfterValidator(check_domain)]
AliasList = Annotated[str, AfterValidator(check_aliases)]
WebRoot = Annotated[str, AfterValidator(check_web_root)]


class Multisite(BaseModel):
    enabled: bool
    type: Literal["subdomain", "subdirectory"] = "subdomain"


# What the config store keeps per site
class SiteRecord(BaseModel):
    domain: str
    aliases: Optional[str] = None
    web_root: Optional[str] = None
    multisite: Optional[Multisite] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SiteCreate(BaseModel):
    domain: DomainName
    aliases: Optional[AliasList] = None
    web_root: Optional[WebRoot] = None
    multisite: Optional[Multisite] = None

    @property
    def hostnames(self) -> List[str]:
        return [self.domain, *split_aliases(self.aliases)]


class SiteUpdate(BaseModel):
    aliases: Optional[AliasList] = None
    web_root: Optional[WebRoot] = None


class SiteInfo(BaseModel):
    name: str
    path: str
    url: str
    aliases: Optional[str] = None
    web_root: Optional[str] = None
    multisite: Optional[Multisite] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SiteCreateResult(BaseModel):
    domain: str
    url: str
    installed: bool
    warnings: List[str] = []


class SiteDeleteResult(BaseModel):
    domain: str
    warnings: List[str] = []
