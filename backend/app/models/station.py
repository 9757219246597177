"""
Station model. Read-mostly catalog data owned by the operator.
"""

from sqlalchemy import Column, Float, Integer, String

from app.db.base import Base, TimestampMixin


class Station(Base, TimestampMixin):
    __tablename__ = "stations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<Station(id={self.id}, name={self.name})>"
