"""Inventory Oracle: stock availability and reservation for order placement.

The oracle is transaction-bound: ``RepositoryInventoryOracle`` reads and
writes InventoryLevel rows through the active unit of work, so every read made
while placing orders sees the store as of that transaction rather than an
earlier snapshot, and every reservation commits or rolls back with the orders.
"""

from abc import ABC, abstractmethod

import structlog
from protean.utils.globals import current_domain

from checkout.errors import InsufficientStock
from checkout.inventory.level import InventoryLevel

logger = structlog.get_logger(__name__)


class InventoryOracle(ABC):
    """Abstract interface for stock lookups and reservations."""

    @abstractmethod
    def get_available(self, stock_key: str) -> int:
        """Units available for ``stock_key`` summed across every location."""
        ...

    @abstractmethod
    def reserve(self, stock_key: str, quantity: int, order_id: str) -> None:
        """Commit ``quantity`` units to ``order_id`` or raise ``InsufficientStock``."""
        ...

    @abstractmethod
    def release(self, stock_key: str, quantity: int, order_id: str) -> int:
        """Return committed units to sale. Returns the number of units released."""
        ...


class RepositoryInventoryOracle(InventoryOracle):
    """Oracle backed by InventoryLevel aggregates in the domain's repository."""

    def _levels(self, stock_key):
        repo = current_domain.repository_for(InventoryLevel)
        levels = repo._dao.query.filter(stock_key=str(stock_key)).all().items
        return sorted(levels, key=lambda level: level.location_id)

    def get_available(self, stock_key: str) -> int:
        return sum(level.available for level in self._levels(stock_key))

    def reserve(self, stock_key: str, quantity: int, order_id: str) -> None:
        levels = self._levels(stock_key)
        available = sum(level.available for level in levels)
        if available < quantity:
            raise InsufficientStock(stock_key=stock_key, requested=quantity, available=available)

        repo = current_domain.repository_for(InventoryLevel)
        remaining = quantity
        for level in levels:
            take = min(level.available, remaining)
            if take:
                level.commit(take, order_id)
                repo.add(level)
                remaining -= take
            if not remaining:
                break

        logger.debug("Stock reserved", stock_key=stock_key, quantity=quantity, order_id=order_id)

    def release(self, stock_key: str, quantity: int, order_id: str) -> int:
        repo = current_domain.repository_for(InventoryLevel)
        remaining = quantity
        for level in self._levels(stock_key):
            if not remaining:
                break
            released = level.release(remaining, order_id)
            if released:
                repo.add(level)
                remaining -= released

        logger.debug("Stock released", stock_key=stock_key, quantity=quantity - remaining, order_id=order_id)
        return quantity - remaining


_current_oracle: InventoryOracle | None = None


def get_inventory_oracle() -> InventoryOracle:
    """Return the active inventory oracle. Defaults to the repository-backed oracle."""
    global _current_oracle
    if _current_oracle is None:
        _current_oracle = RepositoryInventoryOracle()
    return _current_oracle


def set_inventory_oracle(oracle: InventoryOracle) -> None:
    global _current_oracle
    _current_oracle = oracle


def reset_inventory_oracle() -> None:
    global _current_oracle
    _current_oracle = None
