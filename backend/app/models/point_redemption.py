"""
Loyalty redemption ledger. Rows are appended, never updated or deleted.
"""

import uuid

from sqlalchemy import CheckConstraint, Column, Integer, String, Uuid

from app.db.base import AwareDateTime, Base


class PointRedemption(Base):
    __tablename__ = "point_redemptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    points_redeemed = Column(Integer, nullable=False)
    redemption_date = Column(AwareDateTime(), nullable=False)
    description = Column(String(255), nullable=False)

    __table_args__ = (
        CheckConstraint("points_redeemed > 0", name="check_redemption_points_positive"),
    )

    def __repr__(self) -> str:
        return f"<PointRedemption(id={self.id}, user={self.user_id}, points={self.points_redeemed})>"
