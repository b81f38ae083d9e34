"""
Translation of django-fsm errors into domain exceptions.

Services wrap every transition-and-save in ``guarded_transition`` so an
illegal move surfaces as InvalidStateTransitionError and a lost
optimistic race surfaces as StateConflictError, with the same details
everywhere.

Usage:
    from payments.state_machines.guards import guarded_transition

    with guarded_transition(payment, "capture"):
        payment.capture()
        payment.save()
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from django.db import models
from django_fsm import ConcurrentTransition, TransitionNotAllowed

from payments.exceptions import InvalidStateTransitionError, StateConflictError

logger = logging.getLogger(__name__)


@contextmanager
def guarded_transition(instance: models.Model, action: str) -> Iterator[None]:
    """
    Run a transition (and its save) with FSM errors translated.

    Args:
        instance: Payment, Refund or Payout being transitioned
        action: Name of the operation, for error messages and logs

    Raises:
        InvalidStateTransitionError: The current status does not allow the action
        StateConflictError: Another writer changed the status first
    """
    model_name = instance.__class__.__name__
    old_status = instance.status
    details = {
        "id": str(instance.pk),
        "model": model_name,
        "action": action,
        "current_status": old_status,
    }

    try:
        yield
    except TransitionNotAllowed as e:
        raise InvalidStateTransitionError(
            f"Cannot {action} {model_name.lower()} in {old_status} status",
            details=details,
        ) from e
    except ConcurrentTransition as e:
        logger.warning(
            "Concurrent status change detected",
            extra={f"{model_name.lower()}_id": str(instance.pk), "action": action},
        )
        raise StateConflictError(
            f"{model_name} {instance.pk} was modified concurrently",
            details=details,
        ) from e

    logger.info(
        f"{model_name} status changed",
        extra={
            f"{model_name.lower()}_id": str(instance.pk),
            "action": action,
            "old_status": old_status,
            "new_status": instance.status,
        },
    )
