"""
Train model. `total_seats` bounds the seat numbers a trip can sell.
"""

from sqlalchemy import CheckConstraint, Column, Integer, String

from app.db.base import Base, TimestampMixin


class Train(Base, TimestampMixin):
    __tablename__ = "trains"

    id = Column(Integer, primary_key=True, index=True)
    train_number = Column(String(50), unique=True, nullable=False)
    type = Column(String(50), nullable=True)
    total_seats = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("total_seats > 0", name="check_train_total_seats_positive"),
    )

    def __repr__(self) -> str:
        return f"<Train(id={self.id}, number={self.train_number}, seats={self.total_seats})>"
