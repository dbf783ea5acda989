"""
Richness rules for model-produced skin analyses.

A rule is a structural minimum (list length or labeled weekly section) used to
spot a generically shallow answer. Content is never judged semantically.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

WEEKLY_SCHEMA_MINIMAL = "minimal"
WEEKLY_SCHEMA_STRUCTURED = "structured"

# Each section is satisfied when any of its markers appears in the weekly text
STRUCTURED_WEEKLY_SECTIONS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Daily base (AM)", ("daily base (am)",)),
    ("Daily base (PM)", ("daily base (pm)",)),
    ("Active cycle (Mon–Sun)", ("active cycle",)),
    ("Ramp-up (4 weeks)", ("ramp-up", "ramp up")),
    ("Rules", ("rules:",)),
)

DEFAULT_MIN_WEEKLY_ENTRIES = {
    WEEKLY_SCHEMA_MINIMAL: 2,
    WEEKLY_SCHEMA_STRUCTURED: 3,
}


@dataclass(frozen=True)
class RichnessRules:
    min_am_steps: int = 4
    min_pm_steps: int = 5
    min_weekly_entries: int = 2
    min_products: int = 4
    weekly_schema: str = WEEKLY_SCHEMA_MINIMAL
    required_weekly_sections: Tuple[Tuple[str, Tuple[str, ...]], ...] = field(default=())

    @classmethod
    def for_schema(
        cls,
        weekly_schema: str,
        min_am_steps: int = 4,
        min_pm_steps: int = 5,
        min_products: int = 4,
        min_weekly_entries: Optional[int] = None,
    ) -> "RichnessRules":
        if weekly_schema not in DEFAULT_MIN_WEEKLY_ENTRIES:
            raise ValueError(f"Unknown weekly plan schema: {weekly_schema}")

        if min_weekly_entries is None:
            min_weekly_entries = DEFAULT_MIN_WEEKLY_ENTRIES[weekly_schema]

        sections = STRUCTURED_WEEKLY_SECTIONS if weekly_schema == WEEKLY_SCHEMA_STRUCTURED else ()

        return cls(
            min_am_steps=min_am_steps,
            min_pm_steps=min_pm_steps,
            min_weekly_entries=min_weekly_entries,
            min_products=min_products,
            weekly_schema=weekly_schema,
            required_weekly_sections=sections,
        )

    @classmethod
    def from_settings(cls, settings) -> "RichnessRules":
        """Build rules from the app Settings object"""
        return cls.for_schema(
            settings.WEEKLY_PLAN_SCHEMA.lower(),
            min_am_steps=settings.MIN_AM_STEPS,
            min_pm_steps=settings.MIN_PM_STEPS,
            min_products=settings.MIN_PRODUCTS,
            min_weekly_entries=settings.MIN_WEEKLY_ENTRIES,
        )

    @property
    def structured_weekly(self) -> bool:
        return self.weekly_schema == WEEKLY_SCHEMA_STRUCTURED


@dataclass(frozen=True)
class RichnessReport:
    reasons: Tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return not self.reasons


def _list_len(value: Any) -> int:
    return len(value) if isinstance(value, list) else 0


def _weekly_text(weekly: List[Any]) -> str:
    return " ".join(str(entry) for entry in weekly).lower()


def validate_richness(parsed: Dict[str, Any], rules: RichnessRules) -> RichnessReport:
    """
    Check a parsed analysis against the richness rules.

    Returns every violated rule so the repair message can name them all.
    The parsed dict is never modified.
    """
    routine = parsed.get("routine")
    if not isinstance(routine, dict):
        routine = {}

    am_len = _list_len(routine.get("AM"))
    pm_len = _list_len(routine.get("PM"))
    weekly = routine.get("weekly") if isinstance(routine.get("weekly"), list) else []
    products_len = _list_len(parsed.get("products"))

    reasons: List[str] = []

    if am_len < rules.min_am_steps:
        reasons.append(f"AM routine too short ({am_len} steps, need at least {rules.min_am_steps})")
    if pm_len < rules.min_pm_steps:
        reasons.append(f"PM routine too short ({pm_len} steps, need at least {rules.min_pm_steps})")
    if len(weekly) < rules.min_weekly_entries:
        reasons.append(
            f"Weekly plan missing or too short ({len(weekly)} entries, need at least {rules.min_weekly_entries})"
        )

    if rules.required_weekly_sections:
        text = _weekly_text(weekly)
        for label, markers in rules.required_weekly_sections:
            if not any(marker in text for marker in markers):
                reasons.append(f"Weekly plan missing {label}")

    if products_len < rules.min_products:
        reasons.append(f"Not enough product slots covered ({products_len}, need at least {rules.min_products})")

    return RichnessReport(reasons=tuple(reasons))
