from sqlalchemy import Column, String, Float, DateTime

from app.core.db import Base


class ProfileRow(Base):
    __tablename__ = "profiles"

    identity_key = Column(String, primary_key=True)

    display_name = Column(String, nullable=False, default="")
    region = Column(String, nullable=False, default="")
    timezone = Column(String, nullable=False, default="")

    first_seen_at = Column(DateTime(timezone=True), nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=False)

    # null triple means position unknown
    pos_x = Column(Float, nullable=True)
    pos_y = Column(Float, nullable=True)
    pos_z = Column(Float, nullable=True)
