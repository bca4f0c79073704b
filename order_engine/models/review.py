from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint

from order_engine.models.base import Base, BaseModel, utcnow


class Review(BaseModel):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("order_id", "reviewer_id", "is_client_review", name="uq_review_order_direction"),
        UniqueConstraint("service_id", "reviewer_id", name="uq_review_service_reviewer"),
    )

    order_id = Column(ForeignKey("orders.id"), nullable=True, index=True)
    service_id = Column(Integer, nullable=True, index=True)
    reviewer_id = Column(Integer, nullable=False, index=True)
    reviewee_id = Column(Integer, nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    is_order_review = Column(Boolean, nullable=False, default=True)
    is_client_review = Column(Boolean, nullable=True)


class UserRating(Base):
    """Aggregate of every review a user has received, rewritten with each review."""
    __tablename__ = "user_ratings"

    user_id = Column(Integer, primary_key=True, autoincrement=False)
    average_rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
