"""Constants and enums for the catalog backend."""

from enum import Enum


class OfferCondition(str, Enum):
    """Condition of the item an offer sells."""

    NEW = "new"
    REFURBISHED = "refurbished"
    USED = "used"


class OfferSort(str, Enum):
    """Sort orders accepted by the offer listing."""

    NEWEST = "newest"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    DISCOUNT_HIGH = "discount_high"


class ProductSort(str, Enum):
    """Sort orders accepted by product listings."""

    NEWEST = "newest"
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"


# Offer fields whose change is recorded in the price-history ledger
LEDGER_FIELDS = ("price", "original_price", "in_stock", "stock_quantity")

# Offer fields whose change can move the lowest-price marker
LOWEST_PRICE_FIELDS = ("price", "in_stock", "is_active")
