"""Synthesis - turns agent analyses into a bounded list of proposed actions."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from . import db, runner
from .agents import SynthesisAgent
from .config import settings
from .context import build_synthesis_message
from .errors import SynthesisError
from .events import EventType, emit
from .gatherer import GatheredContext
from .models import Project, RunType
from .runs import bracketed_run

logger = logging.getLogger(__name__)


class ActionDraft(BaseModel):
    """One proposed action as returned by the synthesis agent."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    justification: str = Field(min_length=1)


# =============================================================================
# Parse strategies
# =============================================================================

ParseStrategy = Callable[[Any], list[Any] | None]


def _bare_array(payload: Any) -> list[Any] | None:
    return payload if isinstance(payload, list) else None


def _wrapped_under(key: str) -> ParseStrategy:
    def strategy(payload: Any) -> list[Any] | None:
        if isinstance(payload, dict) and isinstance(payload.get(key), list):
            return payload[key]
        return None

    return strategy


# Tried in order; the first that yields a list wins.
PARSE_STRATEGIES: list[tuple[str, ParseStrategy]] = [
    ("bare_array", _bare_array),
    ("actions_key", _wrapped_under("actions")),
    ("proposed_actions_key", _wrapped_under("proposed_actions")),
]

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        match = _FENCED_JSON_RE.search(text)
        if match:
            try:
                return json.loads(match.group(1))
            except json.JSONDecodeError:
                pass
    raise SynthesisError("Synthesis response is not valid JSON")


def parse_actions(text: str) -> list[ActionDraft]:
    """Parse a synthesis response into drafts, keeping at most the configured maximum.

    Items missing a title, description or justification are skipped.
    """
    payload = _load_json(text)

    items: list[Any] | None = None
    for name, strategy in PARSE_STRATEGIES:
        items = strategy(payload)
        if items is not None:
            logger.debug("Synthesis response parsed with %s", name)
            break
        logger.debug("Parse strategy %s did not match", name)
    if items is None:
        raise SynthesisError("No actions generated")

    drafts: list[ActionDraft] = []
    for item in items:
        try:
            drafts.append(ActionDraft.model_validate(item))
        except PydanticValidationError as e:
            logger.warning("Skipping malformed action from synthesis: %s", e.errors()[:1])

    if not drafts:
        raise SynthesisError("No actions generated")
    if len(drafts) < settings.synthesis_min_actions:
        logger.warning(
            "Synthesis produced %d action(s), fewer than the %d requested",
            len(drafts),
            settings.synthesis_min_actions,
        )
    return drafts[: settings.synthesis_max_actions]


# =============================================================================
# Coordinator
# =============================================================================


@dataclass
class SynthesisResult:
    run_id: str
    action_ids: list[str] = field(default_factory=list)
    prompt: str = ""

    @property
    def count(self) -> int:
        return len(self.action_ids)


async def synthesize(
    project: Project,
    synthesis_agent: SynthesisAgent,
    analyses: Sequence[tuple[str, str]],
    rejections: Sequence[str],
    gathered: GatheredContext | None = None,
) -> SynthesisResult:
    """One final_synthesis run: one JSON-mode call, then at most three pending actions.

    Any failure marks the run failed and raises SynthesisError; no actions are written.
    """
    prompt = build_synthesis_message(
        project.name, project.description, gathered or {}, analyses, rejections
    )

    async with bracketed_run(project.id, RunType.FINAL_SYNTHESIS) as run:
        try:
            text = await runner.complete(
                synthesis_agent.system_prompt,
                prompt,
                temperature=settings.synthesis_temperature,
                max_tokens=settings.synthesis_max_tokens,
                json_mode=True,
            )
        except Exception as e:
            raise SynthesisError(f"CEO synthesis failed: {e}") from e

        drafts = parse_actions(text)
        payload = [d.model_dump() for d in drafts]

        async with db.get_session() as session:
            await db.add_output(
                session,
                run.id,
                synthesis_agent.id,
                json.dumps(payload, indent=2),
                metadata={
                    "agent_name": synthesis_agent.name,
                    "agent_type": "ceo_cpo",
                    "input_message": prompt,
                    "proposed_actions_count": len(payload),
                },
            )
            actions = await db.add_proposed_actions(session, project.id, payload)
            result = SynthesisResult(run_id=run.id, action_ids=[a.id for a in actions], prompt=prompt)

    await emit(
        EventType.ACTIONS_PROPOSED,
        project.id,
        f"{result.count} actions proposed",
        run_id=result.run_id,
        agent=synthesis_agent.name,
        data={"action_ids": result.action_ids},
    )
    return result
