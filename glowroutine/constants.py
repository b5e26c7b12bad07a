"""
glowroutine/constants.py
────────────────────────
Static reference data shared by the stores and services.
"""

from typing import Any

from glowroutine.schemas import ALL_DAYS, DayOfWeek, StepCategory, TimeOfDay

STORAGE_KEY_ROUTINE_STEPS = "routine_steps"
STORAGE_KEY_COMPLETED_STEPS = "completed_steps"
STORAGE_KEY_PRODUCTS = "products"

_RETINOL_DAYS = frozenset({DayOfWeek.MONDAY, DayOfWeek.WEDNESDAY, DayOfWeek.FRIDAY})

# Written to the local store the first time it is opened.
DEFAULT_ROUTINE_TEMPLATE: list[dict[str, Any]] = [
    {"name": "Gentle Cleanser", "category": StepCategory.CLEANSER, "time_of_day": TimeOfDay.MORNING, "days": ALL_DAYS},
    {"name": "Toner", "category": StepCategory.TONER, "time_of_day": TimeOfDay.MORNING, "days": ALL_DAYS},
    {"name": "Vitamin C Serum", "category": StepCategory.SERUM, "time_of_day": TimeOfDay.MORNING, "days": ALL_DAYS},
    {"name": "Moisturizer", "category": StepCategory.MOISTURIZER, "time_of_day": TimeOfDay.MORNING, "days": ALL_DAYS},
    {"name": "Sunscreen SPF 50", "category": StepCategory.SUNSCREEN, "time_of_day": TimeOfDay.MORNING, "days": ALL_DAYS},
    {"name": "Oil Cleanser", "category": StepCategory.CLEANSER, "time_of_day": TimeOfDay.EVENING, "days": ALL_DAYS},
    {"name": "Water Cleanser", "category": StepCategory.CLEANSER, "time_of_day": TimeOfDay.EVENING, "days": ALL_DAYS},
    {"name": "Retinol", "category": StepCategory.TREATMENT, "time_of_day": TimeOfDay.EVENING, "days": _RETINOL_DAYS},
    {"name": "Night Moisturizer", "category": StepCategory.MOISTURIZER, "time_of_day": TimeOfDay.EVENING, "days": ALL_DAYS},
]
