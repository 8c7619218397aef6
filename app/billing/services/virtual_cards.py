"""
Virtual card requests: an alternative settlement channel that pays a
provider directly, on the same monthly amount / due day contract as fixed
recurring bills.
"""

from __future__ import annotations

from datetime import date

from django.utils import timezone

from billing.choices import VirtualCardRequestStatus
from billing.models import VirtualCardRequest
from billing.services.dates import due_date_for
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService

# status -> statuses it may move to
ALLOWED_TRANSITIONS = {
    VirtualCardRequestStatus.PENDING: {VirtualCardRequestStatus.APPROVED, VirtualCardRequestStatus.DECLINED},
    VirtualCardRequestStatus.APPROVED: {VirtualCardRequestStatus.ISSUED},
}


class VirtualCardService(BaseService):
    @classmethod
    def request_card(
        cls,
        house_id: int,
        service_name: str,
        monthly_amount_cents: int,
        due_day: int,
        *,
        required_upfront_payment_cents: int | None = None,
        house_service_id: int | None = None,
    ) -> VirtualCardRequest:
        """
        Raises:
            ValidationError: Non-positive amount or due day outside 1..31
        """
        if monthly_amount_cents <= 0:
            raise ValidationError(
                "Monthly amount must be positive",
                error_code="INVALID_AMOUNT",
                details={"monthly_amount_cents": monthly_amount_cents},
            )
        if not 1 <= due_day <= 31:
            raise ValidationError(
                "Due day must be between 1 and 31",
                error_code="INVALID_DUE_DAY",
                details={"due_day": due_day},
            )

        request = VirtualCardRequest.objects.create(
            house_id=house_id,
            house_service_id=house_service_id,
            service_name=service_name,
            monthly_amount_cents=monthly_amount_cents,
            due_day=due_day,
            required_upfront_payment_cents=required_upfront_payment_cents,
        )
        cls.get_logger().info(
            "Virtual card requested",
            extra={"request_id": request.pk, "house_id": house_id, "monthly_amount_cents": monthly_amount_cents},
        )
        return request

    @classmethod
    def next_due_date(cls, request: VirtualCardRequest, reference: date | None = None) -> date:
        return due_date_for(reference or timezone.localdate(), request.due_day)

    @classmethod
    def _move(cls, request_id: int, target: str, **fields) -> VirtualCardRequest:
        with cls.atomic():
            try:
                request = VirtualCardRequest.objects.select_for_update().get(pk=request_id)
            except VirtualCardRequest.DoesNotExist:
                raise NotFoundError(
                    f"Virtual card request {request_id} not found",
                    error_code="VIRTUAL_CARD_REQUEST_NOT_FOUND",
                    details={"request_id": request_id},
                )
            if target not in ALLOWED_TRANSITIONS.get(request.status, set()):
                raise ConflictError(
                    f"Cannot move virtual card request from {request.status} to {target}",
                    error_code="INVALID_CARD_REQUEST_STATE",
                    details={"request_id": request_id, "from_state": request.status, "to_state": target},
                )
            request.status = target
            for name, value in fields.items():
                setattr(request, name, value)
            request.save()
        return request

    @classmethod
    def approve(cls, request_id: int) -> VirtualCardRequest:
        return cls._move(request_id, VirtualCardRequestStatus.APPROVED)

    @classmethod
    def decline(cls, request_id: int) -> VirtualCardRequest:
        return cls._move(request_id, VirtualCardRequestStatus.DECLINED)

    @classmethod
    def mark_issued(cls, request_id: int, virtual_card_id: str) -> VirtualCardRequest:
        return cls._move(request_id, VirtualCardRequestStatus.ISSUED, virtual_card_id=virtual_card_id)
