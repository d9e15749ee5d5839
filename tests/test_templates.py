# tests/test_templates.py

from __future__ import annotations

import pytest

from cli.wizard import draft_from_answers
from core.data.store import TaskStore
from core.errors import ValidationError
from scheduler.templates import TEMPLATES, template_draft


@pytest.mark.parametrize("name", sorted(TEMPLATES))
def test_every_template_is_a_valid_task(name: str, store: TaskStore) -> None:
    task = store.create(template_draft(name))
    assert task.enabled
    assert task.name


def test_templates_are_fresh_copies() -> None:
    first = template_draft("daily_disk")
    first.action.options.size_threshold_mb = 2000
    assert template_draft("daily_disk").action.options.size_threshold_mb == 100


def test_unknown_template() -> None:
    with pytest.raises(ValidationError) as excinfo:
        template_draft("defrag")
    assert excinfo.value.field == "template"


def test_wizard_answers_for_disk_task(store: TaskStore) -> None:
    draft = draft_from_answers({
        "name": "Nightly temp",
        "action": "clean_disk",
        "categories": ["temp_files", "recycle_bin"],
        "size_threshold_mb": "250",
        "preserve_recent_days": "3",
        "schedule": "weekly",
        "weekday": "friday",
        "time": "23:15",
    })
    task = store.create(draft)

    options = task.action.options
    assert options.categories == ["temp_files", "recycle_bin"]
    assert options.size_threshold_mb == 250
    assert options.preserve_recent_days == 3
    assert task.schedule.weekday == "friday"
    assert task.schedule.time.hour == 23


def test_wizard_answers_for_condition_task(store: TaskStore) -> None:
    draft = draft_from_answers({
        "name": "RAM watch",
        "action": "clean_ram",
        "schedule": "on_condition",
        "threshold": "90",
        "cooldown_minutes": "",
    })
    task = store.create(draft)

    assert task.schedule.threshold == 90
    assert task.schedule.cooldown_minutes is None
