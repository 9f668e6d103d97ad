"""Application tests for stock levels and the repository-backed inventory oracle."""

import pytest
from checkout.errors import InsufficientStock
from checkout.inventory.level import InventoryLevel
from checkout.inventory.oracle import RepositoryInventoryOracle
from checkout.inventory.stocking import SetStockLevel
from protean import current_domain


def _set_stock(stock_key, available, location_id="default"):
    return current_domain.process(
        SetStockLevel(stock_key=stock_key, location_id=location_id, available=available), asynchronous=False
    )


def _levels(stock_key):
    repo = current_domain.repository_for(InventoryLevel)
    levels = repo._dao.query.filter(stock_key=stock_key).all().items
    return {level.location_id: level for level in levels}


class TestSetStockLevel:
    def test_creates_then_updates_one_row_per_location(self):
        first = _set_stock("var-001", 4)
        second = _set_stock("var-001", 9)

        assert first == second
        assert _levels("var-001")["default"].available == 9

    def test_available_sums_locations(self):
        _set_stock("var-001", 2, "east")
        _set_stock("var-001", 3, "west")
        assert RepositoryInventoryOracle().get_available("var-001") == 5

    def test_unknown_key_has_nothing_available(self):
        assert RepositoryInventoryOracle().get_available("var-unknown") == 0


class TestReservation:
    def test_reserve_drains_locations_in_order(self):
        _set_stock("var-001", 2, "east")
        _set_stock("var-001", 3, "west")

        RepositoryInventoryOracle().reserve("var-001", 4, "ord-1")

        levels = _levels("var-001")
        assert (levels["east"].available, levels["east"].committed) == (0, 2)
        assert (levels["west"].available, levels["west"].committed) == (1, 2)

    def test_reserve_beyond_total_rejected(self):
        _set_stock("var-001", 2)
        with pytest.raises(InsufficientStock) as exc:
            RepositoryInventoryOracle().reserve("var-001", 3, "ord-1")
        assert exc.value.available == 2
        assert _levels("var-001")["default"].available == 2

    def test_release_returns_committed_units(self):
        _set_stock("var-001", 5)
        oracle = RepositoryInventoryOracle()
        oracle.reserve("var-001", 3, "ord-1")

        assert oracle.release("var-001", 3, "ord-1") == 3
        assert oracle.get_available("var-001") == 5
