# src/task_companion/forms/task_form.py

from __future__ import annotations

"""
Create/edit task flow.

Top-level form (category, subject, quick date, quick time) -> date sub-flow if
the date is still open -> time sub-flow if the time is still open -> details
text form. All steps run on the same message; the Task is only built after
every field is resolved.
"""

import logging
import time as _time
from collections.abc import Callable
from dataclasses import dataclass, replace
from zoneinfo import ZoneInfo

from ..core.errors import UserAbandoned
from ..core.ports import PromptTransport
from ..tasks.task_models import PartialTask, Task
from . import catalog
from .catalog import DomainSnapshot
from .session import FormSpec, InteractionSession, Opener, single_value
from .subflows import SubflowComposer, capture_text, pick_date, pick_time
from .surface import Embed, ResponseHandle, Surface, TextForm

logger = logging.getLogger(__name__)

DETAILS_TITLE = "詳細入力"
DETAILS_LABEL = "詳細"
DETAILS_PLACEHOLDER = "詳細を入力してください"


@dataclass(frozen=True, slots=True)
class FormTimeouts:
    form: float = 1800.0
    picker: float = 1800.0
    text: float = 1800.0


def task_form(snapshot: DomainSnapshot, embed: Embed | None) -> FormSpec[PartialTask]:
    """FormSpec for the top-level task fields; choices come from `snapshot`."""

    def render(partial: PartialTask) -> Surface:
        choices = catalog.build(partial, snapshot)
        return Surface(
            embed=embed,
            components=catalog.to_components(choices, submit_enabled=catalog.can_submit(partial)),
        )

    def reducer(field: str):
        def apply(partial: PartialTask, values) -> PartialTask:
            token = single_value(field, values)
            choices = catalog.field_choices(catalog.build(partial, snapshot), field)
            return replace(partial, **{field: choices.resolve(token)})

        return apply

    return FormSpec(
        name="create_task",
        render=render,
        selects={f: reducer(f) for f in catalog.FIELD_ORDER},
        can_submit=catalog.can_submit,
        submit_id=catalog.SUBMIT,
    )


async def collect_task(
    transport: PromptTransport,
    opener: Opener,
    *,
    snapshot: DomainSnapshot,
    defaults: PartialTask,
    tz: ZoneInfo,
    embed: Embed | None = None,
    timeouts: FormTimeouts = FormTimeouts(),
    owner_id: str | None = None,
    clock: Callable[[], float] = _time.monotonic,
) -> tuple[ResponseHandle, Task]:
    """
    Run the whole task flow and return (final unused handle, Task).

    Raises UserAbandoned if any step times out; nothing is persisted here.
    """
    session = InteractionSession(
        transport,
        task_form(snapshot, embed),
        replace(defaults),
        timeout=timeouts.form,
        owner_id=owner_id,
        clock=clock,
    )
    result = await session.run(opener)
    if not result.submitted or result.handle is None:
        raise UserAbandoned("create_task")

    partial = result.state
    composer = SubflowComposer(result.handle)

    picked_date = await composer.maybe_defer(
        catalog.DATE,
        partial.date,
        lambda h: pick_date(
            transport,
            h,
            today=snapshot.today,
            timeout=timeouts.picker,
            owner_id=owner_id,
            embed=embed,
            clock=clock,
        ),
    )
    partial = replace(partial, date=picked_date)

    picked_time = await composer.maybe_defer(
        catalog.TIME,
        partial.time,
        lambda h: pick_time(
            transport, h, timeout=timeouts.picker, owner_id=owner_id, embed=embed, clock=clock
        ),
    )
    partial = replace(partial, time=picked_time)

    reply = await capture_text(
        transport,
        composer.take_handle(),
        TextForm(
            title=DETAILS_TITLE,
            label=DETAILS_LABEL,
            default=partial.details or "",
            placeholder=DETAILS_PLACEHOLDER,
        ),
        timeout=timeouts.text,
    )
    partial = replace(partial, details=reply.text.strip())

    task = partial.finalize(tz)
    logger.debug("Task form finalized: %r", task)
    return reply.handle, task
