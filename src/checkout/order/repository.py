from checkout.domain import checkout
from checkout.order.order import MerchantOrder


@checkout.repository(part_of=MerchantOrder)
class MerchantOrderRepository:
    def find_by_order_number(self, order_number: str) -> MerchantOrder | None:
        orders = self._dao.query.filter(order_number=order_number).all().items
        return orders[0] if orders else None
