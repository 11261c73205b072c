"""Database models for the catalog backend.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.category import Category
from db.models.merchant import Merchant
from db.models.product import Product
from db.models.offer import Offer
from db.models.offer_history import OfferHistory

__all__ = [
    "Category",
    "Merchant",
    "Product",
    "Offer",
    "OfferHistory",
]
