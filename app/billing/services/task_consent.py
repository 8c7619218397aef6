"""
Consent tasks: a roommate's explicit authorization before being charged.

Lifecycle (billing.models.Task, django-fsm):
    not_required -> pending -> authorized -> completed
    pending/authorized -> failed | cancelled
    failed -> pending (consent requested again)

`authorized` is only ever set from a processor confirmation (the
amount_capturable_updated webhook) carrying the PaymentIntent id.
"""

from __future__ import annotations

from django_fsm import TransitionNotAllowed

from billing.choices import TaskPaymentStatus
from billing.exceptions import ConsentRequiredError
from billing.models import Task
from core.exceptions import NotFoundError
from core.services import BaseService
from houses.services import HouseRoster
from payments.exceptions import InvalidStateTransitionError


class TaskConsentService(BaseService):
    """Transitions for consent Tasks and the allocation gate built on them."""

    @classmethod
    def _lock(cls, task_id: int) -> Task:
        try:
            return Task.objects.select_for_update().get(pk=task_id)
        except Task.DoesNotExist:
            raise NotFoundError(
                f"Task {task_id} not found",
                error_code="TASK_NOT_FOUND",
                details={"task_id": task_id},
            )

    @classmethod
    def _transition(cls, task_id: int, name: str, *args) -> Task:
        with cls.atomic():
            task = cls._lock(task_id)
            previous = task.payment_status
            try:
                getattr(task, name)(*args)
            except TransitionNotAllowed:
                raise InvalidStateTransitionError(
                    f"Cannot {name} task {task_id} in state {previous}",
                    details={"task_id": task_id, "from_state": previous, "transition": name},
                )
            task.save()

        cls.get_logger().info(
            "Task transitioned",
            extra={
                "task_id": task_id,
                "transition": name,
                "from_state": previous,
                "to_state": task.payment_status,
            },
        )
        return task

    # ==========================================================================
    # Operations
    # ==========================================================================

    @classmethod
    def request_consent(
        cls,
        house_service_id: int,
        user_id: int,
        payment_amount_cents: int | None = None,
    ) -> Task:
        """
        Create (or reuse) the roommate's task and move it to PENDING.

        A FAILED task is renewed to PENDING. Any other task already past
        NOT_REQUIRED is returned as is.
        """
        with cls.atomic():
            task, _ = Task.objects.get_or_create(house_service_id=house_service_id, user_id=user_id)
            if task.payment_status == TaskPaymentStatus.FAILED:
                return cls._transition(task.pk, "renew", payment_amount_cents)
            if task.payment_status != TaskPaymentStatus.NOT_REQUIRED:
                return task
        return cls._transition(task.pk, "request_consent", payment_amount_cents)

    @classmethod
    def request_house_consent(cls, house_service_id: int, house_id: int) -> list[Task]:
        """Request consent from every active roommate of the house."""
        return [
            cls.request_consent(house_service_id, user.pk)
            for user in HouseRoster.active_roommates(house_id)
        ]

    @classmethod
    def authorize(cls, task_id: int, payment_intent_id: str) -> Task:
        return cls._transition(task_id, "authorize", payment_intent_id)

    @classmethod
    def complete(cls, task_id: int) -> Task:
        return cls._transition(task_id, "complete")

    @classmethod
    def fail(cls, task_id: int, reason: str) -> Task:
        return cls._transition(task_id, "fail", reason)

    @classmethod
    def cancel(cls, task_id: int) -> Task:
        """Roommate revoked consent. Terminal."""
        return cls._transition(task_id, "cancel")

    # ==========================================================================
    # Allocation gate
    # ==========================================================================

    @classmethod
    def require_authorized(cls, house_service_id: int, user_ids: list[int]) -> dict[int, Task]:
        """
        Return each user's consenting task, keyed by user id.

        A task qualifies once it has reached AUTHORIZED: AUTHORIZED itself,
        or COMPLETED after an earlier bill on the service was paid.

        Raises:
            ConsentRequiredError: Some user has no task, or a task that is
                pending, failed or cancelled
        """
        tasks = {
            task.user_id: task
            for task in Task.objects.filter(house_service_id=house_service_id, user_id__in=user_ids)
        }
        missing = [
            user_id
            for user_id in user_ids
            if user_id not in tasks or not tasks[user_id].has_consent
        ]
        if missing:
            raise ConsentRequiredError(
                f"Consent not authorized for {len(missing)} roommate(s)",
                details={
                    "house_service_id": house_service_id,
                    "user_ids": missing,
                    "states": {uid: tasks[uid].payment_status for uid in missing if uid in tasks},
                },
            )
        return tasks
