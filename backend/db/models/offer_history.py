"""OfferHistory model: append-only ledger of offer price/stock changes."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Float, ForeignKey, Index, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class OfferHistory(BaseModel):
    """Immutable snapshot of an offer, written once per material change.

    ``price_change`` is the delta against the previous snapshot of the same
    offer. ``is_lowest_price`` is true when the snapshot price is the
    lowest this offer has ever recorded.
    """

    __tablename__ = "offer_histories"

    offer_id: Mapped[int] = mapped_column(
        ForeignKey("offers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    original_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    previous_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    in_stock: Mapped[bool] = mapped_column(nullable=False)
    stock_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    free_shipping: Mapped[bool] = mapped_column(default=False)
    price_change: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    price_change_percentage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_lowest_price: Mapped[bool] = mapped_column(default=False)

    offer: Mapped["Offer"] = relationship(
        "Offer", back_populates="history", lazy="raise"
    )

    __table_args__ = (
        Index("idx_offer_history_offer_created", "offer_id", "created_at"),
    )
