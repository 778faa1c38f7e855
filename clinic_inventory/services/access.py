from collections.abc import Iterable, Mapping
from typing import TypeVar

from clinic_inventory.schemas.actor import Actor

T = TypeVar("T")


def can_see_department(actor: Actor, department: str, department_clinics: Mapping[str, str] | None = None) -> bool:
    if actor.overall_visibility:
        return True
    if actor.clinic:
        return (department_clinics or {}).get(department, "") == actor.clinic
    return bool(actor.department) and department == actor.department


def visible_stocks(
    stocks: Iterable[T], actor: Actor, department_clinics: Mapping[str, str] | None = None
) -> list[T]:
    """Keep the rows the actor may see.

    Actors with overall visibility see every department. Otherwise an actor
    affiliated with a clinic sees all departments of that clinic, and anyone
    else sees only their own department.
    """
    return [s for s in stocks if can_see_department(actor, s.department, department_clinics)]


def visible_departments(actor: Actor, department_clinics: Mapping[str, str]) -> list[str] | None:
    """Departments the actor may see, or None when visibility is unrestricted."""
    if actor.overall_visibility:
        return None
    return sorted(d for d in department_clinics if can_see_department(actor, d, department_clinics))
