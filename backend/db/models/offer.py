"""Offer model: one merchant's current listing for one product."""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import OfferCondition
from core.utils import utc_now
from db.base import BaseModel


class Offer(BaseModel):
    """Current price and stock state of a (product, merchant) listing.

    ``is_lowest_price`` is derived: the offer engine sets it on the single
    cheapest in-stock active offer of the product.
    """

    __tablename__ = "offers"

    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    merchant_id: Mapped[int] = mapped_column(
        ForeignKey("merchants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, index=True)
    original_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    in_stock: Mapped[bool] = mapped_column(default=True, index=True)
    stock_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    free_shipping: Mapped[bool] = mapped_column(default=False)
    delivery_time: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    condition: Mapped[str] = mapped_column(String(20), default=OfferCondition.NEW.value)
    warranty: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    affiliate_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    is_lowest_price: Mapped[bool] = mapped_column(default=False, index=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )

    product: Mapped["Product"] = relationship(
        "Product", back_populates="offers", lazy="raise"
    )
    merchant: Mapped["Merchant"] = relationship(
        "Merchant", back_populates="offers", lazy="raise"
    )
    history: Mapped[list["OfferHistory"]] = relationship(
        "OfferHistory",
        back_populates="offer",
        lazy="raise",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("product_id", "merchant_id", name="uq_offer_product_merchant"),
    )

    @property
    def discount_percentage(self) -> int:
        """Rounded discount vs. ``original_price`` (0 when it is not a "was" price)."""
        if not self.original_price or self.original_price <= self.price:
            return 0
        ratio = (self.original_price - self.price) / self.original_price * 100
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @property
    def discount_amount(self) -> Decimal:
        if not self.original_price or self.original_price <= self.price:
            return Decimal("0.00")
        return self.original_price - self.price

    @property
    def total_price(self) -> Decimal:
        """Price including shipping unless shipping is free."""
        if self.free_shipping:
            return self.price
        return self.price + (self.shipping_cost or Decimal("0.00"))
