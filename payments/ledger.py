"""Persistence boundary for payment orders.

No business rules live here beyond the status lifecycle guard; callers
decide *when* to write, the ledger only makes each write atomic.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.db.models import Q

from .exceptions import InvalidTransition, LedgerWriteError, OrderNotFound
from .models import PaymentOrder

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "payment_link",
    "gateway_payment_id",
    "payment_method",
    "last_status_payload",
}


class OrderLedger:
    def insert(self, order: PaymentOrder) -> PaymentOrder:
        try:
            order.save(force_insert=True)
        except DatabaseError as e:
            logger.error("Ledger insert failed for order %s: %s", order.id, e)
            raise LedgerWriteError(str(e)) from e
        return order

    def update_status(self, order_id, status=None, gateway_reference=None, **fields) -> PaymentOrder:
        """Apply a status change and/or field updates to one order under a row lock.

        ``gateway_reference`` can only be set once; ``status`` must be a move
        allowed by :attr:`PaymentOrder.TRANSITIONS` or the current status.
        Once an order has left ``pending`` its ``gateway_payment_id`` is fixed.
        The returned order carries ``previous_status`` as read under the lock.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        try:
            with transaction.atomic():
                try:
                    order = PaymentOrder.objects.select_for_update().get(pk=order_id)
                except (PaymentOrder.DoesNotExist, DjangoValidationError):
                    raise OrderNotFound(f"No payment with id {order_id}")

                order.previous_status = order.status
                if status and status != order.status:
                    if not order.can_transition_to(status):
                        raise InvalidTransition(f"{order.status} -> {status} is not allowed for {order_id}")
                    order.status = status

                if gateway_reference:
                    if order.payment_gateway_id and order.payment_gateway_id != gateway_reference:
                        raise InvalidTransition(
                            f"Gateway reference already set for {order_id}",
                            error="Gateway reference already set",
                        )
                    order.payment_gateway_id = gateway_reference

                # a settled order stays bound to the gateway payment that settled it
                payment_id = fields.get("gateway_payment_id")
                if (
                    payment_id
                    and order.previous_status != PaymentOrder.Status.PENDING
                    and order.gateway_payment_id
                    and order.gateway_payment_id != payment_id
                ):
                    raise InvalidTransition(
                        f"{order_id} is settled by gateway payment {order.gateway_payment_id}, not {payment_id}",
                        error="Payment settled by another gateway payment",
                    )

                for name, value in fields.items():
                    setattr(order, name, value)
                order.save()
        except DatabaseError as e:
            logger.error("Ledger update failed for order %s: %s", order_id, e)
            raise LedgerWriteError(str(e), error="Failed to update payment record") from e
        return order

    def get_by_id(self, order_id) -> PaymentOrder:
        try:
            return PaymentOrder.objects.get(pk=order_id)
        except (PaymentOrder.DoesNotExist, ValueError, DjangoValidationError):
            raise OrderNotFound(f"No payment with id {order_id}")

    def get_by_gateway_reference(self, reference: str) -> PaymentOrder:
        order = PaymentOrder.objects.filter(payment_gateway_id=reference).first()
        if order is None:
            raise OrderNotFound(f"No payment with gateway reference {reference}")
        return order

    def list_by_participant(self, user_id: str):
        return PaymentOrder.objects.filter(
            Q(client_user_id=user_id) | Q(lawyer_user_id=user_id)
        ).order_by("-created_at")

    def list_stale_pending(self, older_than, limit: int = 50):
        return list(
            PaymentOrder.objects.filter(status=PaymentOrder.Status.PENDING, updated_at__lt=older_than)
            .order_by("updated_at")[:limit]
        )
