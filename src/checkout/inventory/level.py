"""InventoryLevel aggregate: sellable stock of one item at one storage location.

Stock is keyed by variant id, or by listing id for listings without variants.
The quantity a checkout can draw on is the sum of ``available`` across every
location holding the key. ``committed`` counts units promised to placed orders
that have not shipped yet.
"""

from datetime import UTC, datetime

from protean import atomic_change
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout
from checkout.inventory.events import StockCommitted, StockLevelSet, StockReleased


@checkout.aggregate
class InventoryLevel:
    stock_key = Identifier(required=True)
    listing_id = Identifier()
    location_id = String(required=True, max_length=100)
    available = Integer(default=0, min_value=0)
    committed = Integer(default=0, min_value=0)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, stock_key, location_id, available=0, listing_id=None):
        now = datetime.now(UTC)
        level = cls(
            stock_key=stock_key,
            listing_id=listing_id,
            location_id=location_id,
            available=0,
            committed=0,
            created_at=now,
            updated_at=now,
        )
        level.set_available(available, reason="Initial stock")
        return level

    def set_available(self, quantity, reason=None):
        if quantity < 0:
            raise ValidationError({"available": ["Available stock cannot be negative"]})

        previous = self.available
        now = datetime.now(UTC)
        with atomic_change(self):
            self.available = quantity
            self.updated_at = now

        self.raise_(
            StockLevelSet(
                inventory_level_id=str(self.id),
                stock_key=str(self.stock_key),
                location_id=self.location_id,
                previous_available=previous,
                new_available=quantity,
                reason=reason,
                set_at=now,
            )
        )

    def commit(self, quantity, order_id):
        """Move ``quantity`` units from available to committed for an order."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if quantity > self.available:
            raise ValidationError(
                {"available": [f"Only {self.available} units available at location {self.location_id}"]}
            )

        now = datetime.now(UTC)
        with atomic_change(self):
            self.available = self.available - quantity
            self.committed = self.committed + quantity
            self.updated_at = now

        self.raise_(
            StockCommitted(
                inventory_level_id=str(self.id),
                stock_key=str(self.stock_key),
                location_id=self.location_id,
                order_id=str(order_id),
                quantity=quantity,
                available=self.available,
                committed=self.committed,
                committed_at=now,
            )
        )

    def release(self, quantity, order_id):
        """Return up to ``quantity`` committed units to available. Returns the number released."""
        released = min(quantity, self.committed)
        if released < 1:
            return 0

        now = datetime.now(UTC)
        with atomic_change(self):
            self.committed = self.committed - released
            self.available = self.available + released
            self.updated_at = now

        self.raise_(
            StockReleased(
                inventory_level_id=str(self.id),
                stock_key=str(self.stock_key),
                location_id=self.location_id,
                order_id=str(order_id),
                quantity=released,
                available=self.available,
                committed=self.committed,
                released_at=now,
            )
        )
        return released
