"""
Helpers for django-fsm state machines.

django-fsm raises TransitionNotAllowed when a @transition method is called
from a state outside its source list. Services call transitions through
apply_transition so callers only ever see the domain InvalidTransition.

Usage:
    from core.fsm import apply_transition

    apply_transition(request, "accept")
    request.save()
"""

from __future__ import annotations

from typing import Any

from django_fsm import TransitionNotAllowed

from core.exceptions import InvalidTransition


def apply_transition(instance: Any, name: str, *args: Any, **kwargs: Any) -> Any:
    """
    Call the transition method ``name`` on ``instance``.

    The instance is not saved; nothing is changed when the transition is
    refused.

    Raises:
        InvalidTransition: If the transition is not allowed from the
            current state
    """
    method = getattr(instance, name)
    field_name = method._django_fsm.field.name
    current_state = getattr(instance, field_name)
    try:
        return method(*args, **kwargs)
    except TransitionNotAllowed:
        raise InvalidTransition(
            f"Cannot {name} {type(instance).__name__} in state '{current_state}'",
            details={
                "current_state": str(current_state),
                "transition": name,
                "field": field_name,
            },
        )
