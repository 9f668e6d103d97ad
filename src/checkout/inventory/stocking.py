"""Stock level management: command and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.inventory.level import InventoryLevel


@checkout.command(part_of="InventoryLevel")
class SetStockLevel:
    """Record the sellable quantity of an item at a location."""

    stock_key = Identifier(required=True)
    location_id = String(required=True, max_length=100)
    available = Integer(required=True, min_value=0)
    listing_id = Identifier()
    reason = String(max_length=255)


@checkout.command_handler(part_of=InventoryLevel)
class StockLevelHandler:
    @handle(SetStockLevel)
    def set_stock_level(self, command):
        repo = current_domain.repository_for(InventoryLevel)
        existing = repo._dao.query.filter(
            stock_key=str(command.stock_key),
            location_id=command.location_id,
        ).all().items

        if existing:
            level = existing[0]
            level.set_available(command.available, reason=command.reason)
        else:
            level = InventoryLevel.create(
                stock_key=command.stock_key,
                location_id=command.location_id,
                available=command.available,
                listing_id=command.listing_id,
            )

        repo.add(level)
        return str(level.id)
