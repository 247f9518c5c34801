"""Agent runner - one bounded model call per agent."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from .config import settings
from .errors import ModelBackendError
from .llm_client import get_chat_client
from .rate_limit import wait_for_model_slot

logger = logging.getLogger(__name__)

FORMATTING_INSTRUCTIONS = """IMPORTANT FORMATTING REQUIREMENTS:
- Format your response in clear, human-readable text (not JSON)
- Use markdown formatting with headings (##, ###), bullet points (-), and numbered lists
- Organize your analysis into clear sections with descriptive headings
- Use bold text (**text**) for emphasis on key points
- Break up long paragraphs for readability
- Include specific examples and data points where relevant
- End with clear, actionable recommendations or insights"""


class ModelBackend(Protocol):
    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        temperature: float,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str: ...

    async def aclose(self) -> None: ...


def build_system_prompt(system_prompt: str) -> str:
    """Agent's own instructions plus the fixed prose-formatting requirements."""
    return f"{system_prompt.rstrip()}\n\n{FORMATTING_INSTRUCTIONS}"


async def complete(
    system_prompt: str,
    user_message: str,
    *,
    temperature: float,
    max_tokens: int,
    json_mode: bool = False,
    client: ModelBackend | None = None,
) -> str:
    """Rate-limited, timeout-bounded call to the model backend."""
    if not await wait_for_model_slot():
        raise ModelBackendError("Rate limit timeout")

    owns_client = client is None
    backend = client or get_chat_client()
    try:
        return await asyncio.wait_for(
            backend.complete(
                system_prompt,
                user_message,
                temperature=temperature,
                max_tokens=max_tokens,
                json_mode=json_mode,
            ),
            timeout=settings.llm_timeout,
        )
    except TimeoutError as e:
        raise ModelBackendError(f"Model call timed out after {settings.llm_timeout}s") from e
    finally:
        if owns_client:
            await backend.aclose()


async def run_agent(
    system_prompt: str,
    user_message: str,
    *,
    client: ModelBackend | None = None,
) -> str:
    """Run one analysis agent and return its raw text; raises ModelBackendError."""
    return await complete(
        build_system_prompt(system_prompt),
        user_message,
        temperature=settings.agent_temperature,
        max_tokens=settings.agent_max_tokens,
        client=client,
    )
