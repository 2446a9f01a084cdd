"""Inventory repositories package."""

from modules.inventory.repositories.django_repository import StockDjangoRepository
from modules.inventory.repositories.interfaces import IStockRepository

__all__ = ["IStockRepository", "StockDjangoRepository"]
