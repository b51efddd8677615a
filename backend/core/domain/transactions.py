"""
core.domain.transactions — Helpers for safe state transitions.

Provides utilities that wrap ``transaction.atomic``, ``select_for_update``
and conditional updates into reusable patterns so that every app's
service layer follows the same concurrency-safe approach.

Usage::

    from core.domain.transactions import atomic_transition

    appointment = atomic_transition(
        instance=appointment,
        target_status="confirmed",
        allowed_sources={"scheduled"},
    )

    # Optimistic compare-and-swap on a single column:
    from core.domain.transactions import compare_and_swap

    swapped = compare_and_swap(
        AutoAssignmentRule, rule.pk,
        field="last_round_robin_index", expected=2, new=3,
    )
"""

from __future__ import annotations

from typing import Any, Iterable, TypeVar

from django.db import models, transaction

from core.domain.exceptions import InvalidTransition, NotFound

M = TypeVar("M", bound=models.Model)


def atomic_transition(
    *,
    instance: M,
    status_field: str = "status",
    target_status: str,
    allowed_sources: Iterable[str] | None = None,
    extra_fields: dict[str, Any] | None = None,
) -> M:
    """
    Atomically transition a model instance from one status to another.

    Steps performed inside ``transaction.atomic()``:
        1. Re-fetch the instance with ``select_for_update()`` to acquire
           a row-level lock.
        2. If ``allowed_sources`` is provided, verify the current value
           is among them; raise ``InvalidTransition`` otherwise.
        3. Set ``status_field`` (and any ``extra_fields``) and save.

    Args:
        instance:        The model instance to transition.
        status_field:    Name of the status field.  Defaults to ``"status"``.
        target_status:   The desired new value.
        allowed_sources: Status values from which the transition is
                         permitted.  ``None`` accepts any current value.
        extra_fields:    Additional ``{field: value}`` pairs written in
                         the same save.

    Returns:
        The same instance with the updated values persisted.

    Raises:
        NotFound:          If the instance no longer exists in the DB.
        InvalidTransition: If the current status is not in ``allowed_sources``.
    """
    model_class = type(instance)

    with transaction.atomic():
        locked = lock_for_update(model_class, instance.pk)
        current = getattr(locked, status_field)

        if allowed_sources is not None and current not in allowed_sources:
            raise InvalidTransition(
                current=str(current),
                target=target_status,
                reason=(
                    f"allowed source states: "
                    f"{', '.join(str(s) for s in allowed_sources)}"
                ),
            )

        setattr(locked, status_field, target_status)
        update_fields = {status_field, "updated_at"}
        for field, value in (extra_fields or {}).items():
            setattr(locked, field, value)
            update_fields.add(field)

        locked.save(update_fields=list(update_fields))

    instance.refresh_from_db()
    return instance


def lock_for_update(model_class: type[M], pk: Any) -> M:
    """
    Acquire a row-level lock on the given model instance.

    Convenience wrapper around ``select_for_update().get(pk=pk)``
    that must be called inside an ``atomic()`` block.

    Raises:
        NotFound: If no row with that PK exists.
    """
    try:
        return model_class.objects.select_for_update().get(pk=pk)
    except model_class.DoesNotExist:
        raise NotFound(f"{model_class.__name__} with pk={pk} does not exist.")


def compare_and_swap(
    model_class: type[models.Model],
    pk: Any,
    *,
    field: str,
    expected: Any,
    new: Any,
    extra_updates: dict[str, Any] | None = None,
) -> bool:
    """
    Set ``field`` to ``new`` only if it still holds ``expected``.

    Implemented as a single conditional ``UPDATE ... WHERE field = expected``
    so no lock is held between the read and the write.

    Returns:
        ``True`` if exactly one row was updated, ``False`` if another
        writer changed the value first.
    """
    updates = {field: new}
    if extra_updates:
        updates.update(extra_updates)
    updated = (
        model_class.objects
        .filter(pk=pk, **{field: expected})
        .update(**updates)
    )
    return updated == 1
