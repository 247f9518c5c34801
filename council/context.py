"""Prompt payloads built from project metadata and gathered context."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .config import settings

NO_SOURCES_TEXT = "No data sources are currently connected."

REJECTIONS_HEADING = "## Previous Action Rejections"
REJECTIONS_INTRO = (
    "The following actions were previously rejected. "
    "Please learn from these to improve your recommendations:"
)

CLOSING_INSTRUCTION = (
    "Please analyze the available data and provide your insights and recommendations "
    "in a clear, well-structured format. Use headings, bullet points, and clear sections "
    "to organize your analysis."
)

SYNTHESIS_INSTRUCTION = """Based on all the agent analyses above, please provide {min_actions}-{max_actions} proposed actions. Each action should have:
- A clear, concise title
- A detailed description
- A strong justification explaining why this action should be taken

Respond with JSON only, using the following structure:
{{
  "actions": [
    {{
      "title": "Action title",
      "description": "Detailed description",
      "justification": "Why this action should be taken"
    }}
  ]
}}"""

_SOURCE_LABELS = {"notion": "Notion"}


def _singular(category: str) -> str:
    return category[:-1] if category.endswith("s") else category


def _source_label(source_type: str) -> str:
    return _SOURCE_LABELS.get(source_type, source_type.replace("_", " ").title())


def _format_category(category: str, items: Sequence[Mapping[str, Any]]) -> list[str]:
    noun = _singular(category)
    lines = [f"**{category.replace('_', ' ').title()} Available:** {len(items)} {noun}(s)"]
    if len(items) <= settings.context_title_listing_limit:
        for idx, item in enumerate(items, start=1):
            title = item.get("title") or f"Untitled {noun.title()}"
            lines.append(f"  {idx}. {title}")
    return lines


def format_gathered(gathered: Mapping[str, Mapping[str, Sequence[Mapping[str, Any]]]]) -> str:
    """Human-readable rendering of gathered context: counts, and titles when small."""
    sections: list[str] = []
    for source_type in sorted(gathered):
        lines = [f"### {_source_label(source_type)} Data"]
        categories = gathered[source_type]
        for category in sorted(categories):
            items = categories[category]
            if items:
                lines.extend(_format_category(category, items))
                lines.append("")
        if len(lines) == 1:
            lines.append("No content found.")
            lines.append("")
        sections.append("\n".join(lines))

    if not sections:
        return NO_SOURCES_TEXT + "\n"
    return "\n".join(sections)


def format_rejections(rejections: Sequence[str]) -> str:
    lines = [REJECTIONS_HEADING, "", REJECTIONS_INTRO, ""]
    lines.extend(f"{idx}. {reason}" for idx, reason in enumerate(rejections, start=1))
    return "\n".join(lines) + "\n"


def format_context(
    project_name: str,
    project_description: str | None,
    gathered: Mapping[str, Mapping[str, Sequence[Mapping[str, Any]]]],
    rejections: Sequence[str] | None = None,
    *,
    closing: bool = True,
) -> str:
    """Build the user-turn payload shared by every agent.

    Rejections are included only when given (synthesis calls).
    """
    parts = ["# Project Context", "", f"**Project Name:** {project_name}", ""]
    if project_description:
        parts.extend(["**Project Description:**", project_description, ""])

    parts.extend(["## Available Data Sources", "", format_gathered(gathered)])

    if rejections:
        parts.append(format_rejections(rejections))

    if closing:
        parts.extend(["---", "", CLOSING_INSTRUCTION])
    return "\n".join(parts)


def build_synthesis_message(
    project_name: str,
    project_description: str | None,
    gathered: Mapping[str, Mapping[str, Sequence[Mapping[str, Any]]]],
    analyses: Sequence[tuple[str, str]],
    rejections: Sequence[str] | None = None,
) -> str:
    """Synthesis payload: shared context, every labeled analysis, then the JSON instruction."""
    parts = [
        format_context(project_name, project_description, gathered, rejections, closing=False),
        "## Agent Analyses",
        "",
    ]
    for idx, (agent_name, output) in enumerate(analyses, start=1):
        parts.extend([f"### {idx}. {agent_name}", output, ""])

    parts.extend(
        [
            "---",
            "",
            SYNTHESIS_INSTRUCTION.format(
                min_actions=settings.synthesis_min_actions,
                max_actions=settings.synthesis_max_actions,
            ),
        ]
    )
    return "\n".join(parts)
