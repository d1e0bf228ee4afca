from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from devwp.core.database import Base


class Setting(Base):
    __tablename__ = "settings"

    key_name = Column(String(255), primary_key=True)
    value_text = Column(Text)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
