import asyncio

import pytest

from council import runner
from council.config import settings
from council.errors import ModelBackendError
from council.runner import FORMATTING_INSTRUCTIONS, build_system_prompt, run_agent


def test_build_system_prompt_appends_formatting_requirements() -> None:
    prompt = build_system_prompt("You are a designer.\n")
    assert prompt.startswith("You are a designer.\n\n")
    assert prompt.endswith(FORMATTING_INSTRUCTIONS)


@pytest.mark.asyncio
async def test_run_agent_uses_agent_settings(fake_model) -> None:
    text = await run_agent("You are a designer.", "# Project Context")

    assert "## Findings" in text
    (call,) = fake_model.calls
    assert call["user_message"] == "# Project Context"
    assert FORMATTING_INSTRUCTIONS in call["system_prompt"]
    assert call["temperature"] == settings.agent_temperature
    assert call["max_tokens"] == settings.agent_max_tokens
    assert call["json_mode"] is False
    assert fake_model.closed == 1


@pytest.mark.asyncio
async def test_run_agent_propagates_backend_error(fake_model) -> None:
    fake_model.fail_markers.add("designer")
    with pytest.raises(ModelBackendError, match="quota exceeded"):
        await run_agent("You are a designer.", "ctx")
    assert fake_model.closed == 1


@pytest.mark.asyncio
async def test_run_agent_times_out(monkeypatch: pytest.MonkeyPatch) -> None:
    class SlowModel:
        async def complete(self, *args, **kwargs) -> str:
            await asyncio.sleep(5)
            return "late"

        async def aclose(self) -> None:
            pass

    monkeypatch.setattr(settings, "llm_timeout", 0.05)
    with pytest.raises(ModelBackendError, match="timed out"):
        await run_agent("p", "ctx", client=SlowModel())


@pytest.mark.asyncio
async def test_run_agent_rate_limit_exhausted(monkeypatch: pytest.MonkeyPatch, fake_model) -> None:
    async def never(model: str | None = None) -> bool:
        return False

    monkeypatch.setattr(runner, "wait_for_model_slot", never)
    with pytest.raises(ModelBackendError, match="Rate limit timeout"):
        await run_agent("p", "ctx")
    assert fake_model.calls == []


@pytest.mark.asyncio
async def test_passed_client_is_not_closed(fake_model) -> None:
    await run_agent("p", "ctx", client=fake_model)
    assert fake_model.closed == 0
