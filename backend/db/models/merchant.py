"""Merchant model."""

from typing import Optional

from sqlalchemy import Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Merchant(BaseModel):
    """A shop that publishes offers.

    ``product_count`` is the denormalized number of offers the merchant
    currently lists; the offer engine keeps it in step.
    """

    __tablename__ = "merchants"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    website_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    logo_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rating: Mapped[float] = mapped_column(Float, default=0.0, index=True)
    review_count: Mapped[int] = mapped_column(Integer, default=0)
    product_count: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)

    offers: Mapped[list["Offer"]] = relationship(
        "Offer",
        back_populates="merchant",
        lazy="raise",
        passive_deletes=True,
    )
