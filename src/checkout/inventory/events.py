"""Domain events for the InventoryLevel aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="InventoryLevel")
class StockLevelSet:
    """A merchant recorded the sellable quantity at one location."""

    __version__ = 1

    inventory_level_id = Identifier(required=True)
    stock_key = Identifier(required=True)
    location_id = String(required=True)
    previous_available = Integer(required=True)
    new_available = Integer(required=True)
    reason = String()
    set_at = DateTime(required=True)


@checkout.event(part_of="InventoryLevel")
class StockCommitted:
    """Stock moved from available to committed for a placed order."""

    __version__ = 1

    inventory_level_id = Identifier(required=True)
    stock_key = Identifier(required=True)
    location_id = String(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    available = Integer(required=True)
    committed = Integer(required=True)
    committed_at = DateTime(required=True)


@checkout.event(part_of="InventoryLevel")
class StockReleased:
    """Committed stock went back on sale because its order was cancelled."""

    __version__ = 1

    inventory_level_id = Identifier(required=True)
    stock_key = Identifier(required=True)
    location_id = String(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    available = Integer(required=True)
    committed = Integer(required=True)
    released_at = DateTime(required=True)
