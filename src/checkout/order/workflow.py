"""Merchant workflow flag: command and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import MerchantOrder, WorkflowStatus


@checkout.command(part_of="MerchantOrder")
class UpdateWorkflowStatus:
    order_id = Identifier(required=True)
    workflow_status = String(required=True, choices=WorkflowStatus)
    hold_reason = String(max_length=500)


@checkout.command_handler(part_of=MerchantOrder)
class WorkflowStatusHandler:
    @handle(UpdateWorkflowStatus)
    def update_workflow_status(self, command):
        repo = current_domain.repository_for(MerchantOrder)
        order = repo.get(command.order_id)
        order.update_workflow_status(command.workflow_status, hold_reason=command.hold_reason)
        repo.add(order)
