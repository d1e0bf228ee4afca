from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.sql import func

from devwp.core.database import Base


class Site(Base):
    __tablename__ = "sites"

    domain = Column(String(255), primary_key=True)
    aliases = Column(Text, nullable=True)  # space separated
    web_root = Column(String(255), nullable=True)  # relative to the site folder

    multisite_enabled = Column(Boolean, default=False, nullable=False)
    multisite_type = Column(String(20), nullable=True)  # subdomain / subdirectory

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
