# avotrace/services/lots/step_validator.py
"""
Per-step completion predicates for the lot workflow.

A step counts as done when every required field of its stage record is
non-empty. No cross-step or range checks are applied here.
"""
from typing import Any, Dict, Iterable, List, Mapping

from pydantic import BaseModel

from avotrace.models.stage_models import STAGES, TOTAL_STEPS, stage_for_step


def is_filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def _section(form: Any, key: str) -> Mapping[str, Any]:
    if isinstance(form, BaseModel):
        form = form.model_dump()
    section = (form or {}).get(key) or {}
    if isinstance(section, BaseModel):
        section = section.model_dump()
    return section


def missing_fields(step: int, form: Any) -> List[str]:
    stage = stage_for_step(step)
    section = _section(form, stage.key)
    return [f for f in stage.required_fields if not is_filled(section.get(f))]


def validate_step(step: int, form: Any) -> bool:
    return not missing_fields(step, form)


def step_validity(form: Any) -> Dict[int, bool]:
    return {stage.step: validate_step(stage.step, form) for stage in STAGES}


def completion_percentage(completed_steps: Iterable[int]) -> int:
    done = {int(s) for s in completed_steps or [] if 1 <= int(s) <= TOTAL_STEPS}
    return round(len(done) / TOTAL_STEPS * 100)


def form_completion_percentage(form: Any) -> int:
    validity = step_validity(form)
    return completion_percentage(step for step, ok in validity.items() if ok)
