import pytest
from click.testing import CliRunner

from council import cli
from council.errors import InvalidTransitionError, NotFoundError


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_help_lists_commands(runner: CliRunner) -> None:
    result = runner.invoke(cli.main, ["--help"])

    assert result.exit_code == 0
    for command in ("run", "run-all", "run-agent", "actions", "track", "metrics", "refresh"):
        assert command in result.output


def test_score_outside_range_is_a_usage_error(runner: CliRunner) -> None:
    result = runner.invoke(cli.main, ["track", "some-tracking-id", "--score", "7"])
    assert result.exit_code == 2


def test_reject_requires_reason_option(runner: CliRunner) -> None:
    result = runner.invoke(cli.main, ["actions", "reject", "some-action-id"])
    assert result.exit_code == 2
    assert "--reason" in result.output


def test_unknown_agent_type_is_a_usage_error(runner: CliRunner) -> None:
    result = runner.invoke(
        cli.main, ["agents", "add", "p", "Astrologer", "--type", "astrologer", "--prompt", "x"]
    )
    assert result.exit_code == 2


def test_domain_errors_exit_cleanly(runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    async def missing(action_id: str):
        raise NotFoundError(f"Proposed action not found: {action_id}")

    monkeypatch.setattr(cli, "accept_action", missing)
    result = runner.invoke(cli.main, ["actions", "accept", "abc"])

    assert result.exit_code == 1
    assert "Proposed action not found: abc" in result.output


def test_track_passes_only_given_fields(runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict = {}

    class Tracking:
        id = "t-1"
        status = "completed"
        success_score = 4

    async def fake_update(tracking_id: str, **kwargs):
        seen["id"] = tracking_id
        seen.update(kwargs)
        return Tracking()

    monkeypatch.setattr(cli, "update_tracking", fake_update)
    result = runner.invoke(cli.main, ["track", "t-1", "--score", "4", "--status", "completed"])

    assert result.exit_code == 0, result.output
    assert seen["id"] == "t-1"
    assert seen["success_score"] == 4
    assert seen["status"] == "completed"
    assert seen["comments"] is cli.UNSET


def test_invalid_transition_is_reported(runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    async def reopen(tracking_id: str, **kwargs):
        raise InvalidTransitionError("Completed tracking cannot be reopened")

    monkeypatch.setattr(cli, "update_tracking", reopen)
    result = runner.invoke(cli.main, ["track", "t-1", "--status", "active"])

    assert result.exit_code == 1
    assert "cannot be reopened" in result.output
