from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

import pytest

from tenantflags.commands import FeatureAction
from tenantflags.config import FeatureConfig, build_config
from tenantflags.errors import (
    ConfigurationError,
    EmptyTenantListError,
    ExitCode,
    InputError,
    NoJsonFoundError,
    ProcessFailedError,
    SpawnFailedError,
    StatusParseError,
)
from tenantflags.orchestrator import (
    ActionState,
    FeatureActionFlow,
    Notification,
    NotificationLevel,
    fetch_tenants,
    run_action,
)
from tenantflags.process import SPAWN_FAILED_EXIT_CODE, CommandResult, ProcessRunner

_TENANTS_OUTPUT = 'Loading development environment\n["north","south"]\n'


def _cp(exit_code: int, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(exit_code=exit_code, stdout=stdout, stderr=stderr)


class FakeRunner:
    def __init__(self, action_result: CommandResult, tenants_result: CommandResult | None = None) -> None:
        self.action_result = action_result
        self.tenants_result = tenants_result or _cp(0, stdout=_TENANTS_OUTPUT)
        self.commands: list[str] = []

    async def __call__(self, command: str) -> CommandResult:
        self.commands.append(command)
        await asyncio.sleep(0)
        if ".pluck(:name).to_json" in command:
            return self.tenants_result
        return self.action_result


def _pick(name: str):
    prompts: list[str] = []

    def _choose(tenants: Sequence[str], prompt: str) -> str | None:
        prompts.append(prompt)
        assert list(tenants) == ["north", "south"]
        return name

    _choose.prompts = prompts  # type: ignore[attr-defined]
    return _choose


def _cancel(tenants: Sequence[str], prompt: str) -> str | None:
    return None


@pytest.mark.asyncio
async def test_enable_success_reports_feature_and_tenant(apartment_config: FeatureConfig) -> None:
    notes: list[Notification] = []
    runner = FakeRunner(_cp(0))
    chooser = _pick("south")

    outcome = await run_action(
        apartment_config,
        FeatureAction.ENABLE,
        "Dark Mode",
        chooser=chooser,
        notify=notes.append,
        runner=runner,
    )

    assert outcome.ok is True
    assert outcome.feature == "dark_mode"
    assert outcome.tenant == "south"
    assert outcome.enabled is True
    final = notes[-1]
    assert final.level is NotificationLevel.INFO
    assert final.title == "Tenant Feature"
    assert "dark_mode" in final.message and "south" in final.message
    assert "enabled" in final.message
    assert chooser.prompts == ["Select Tenant to enable :dark_mode"]
    assert runner.commands[-1] == (
        "RAILS_ENV=development bin/rails runner "
        "\"Apartment::Tenant.switch('south') do; MyCompany::Feature.enable(:dark_mode); end\""
    )


@pytest.mark.asyncio
async def test_enable_failure_reports_stderr(apartment_config: FeatureConfig) -> None:
    notes: list[Notification] = []

    outcome = await run_action(
        apartment_config,
        FeatureAction.ENABLE,
        "Dark Mode",
        chooser=_pick("south"),
        notify=notes.append,
        runner=FakeRunner(_cp(1, stdout="partial", stderr="NoMethodError")),
    )

    assert outcome.state is ActionState.ERRORED
    assert isinstance(outcome.error, ProcessFailedError)
    assert notes[-1].level is NotificationLevel.ERROR
    assert "NoMethodError" in notes[-1].message
    assert notes[-1].message.startswith("Error enabling feature:")


@pytest.mark.asyncio
async def test_disable_failure_falls_back_to_stdout(apartment_config: FeatureConfig) -> None:
    notes: list[Notification] = []

    await run_action(
        apartment_config,
        "disable",
        "beta",
        chooser=_pick("north"),
        notify=notes.append,
        runner=FakeRunner(_cp(1, stdout="undefined method `disable'")),
    )

    assert notes[-1].message == "Error disabling feature: undefined method `disable'"


@pytest.mark.asyncio
async def test_disable_success(apartment_config: FeatureConfig) -> None:
    notes: list[Notification] = []

    outcome = await run_action(
        apartment_config,
        FeatureAction.DISABLE,
        "beta",
        chooser=_pick("north"),
        notify=notes.append,
        runner=FakeRunner(_cp(0)),
    )

    assert outcome.ok is True
    assert outcome.enabled is False
    assert notes[-1].message == "Feature :beta disabled in 'north'"


@pytest.mark.parametrize(("stdout", "expected"), [("=> true\n", True), ("false\n", False)])
@pytest.mark.asyncio
async def test_check_reports_status(apartment_config: FeatureConfig, stdout: str, expected: bool) -> None:
    notes: list[Notification] = []

    outcome = await run_action(
        apartment_config,
        FeatureAction.CHECK,
        "Dark Mode",
        chooser=_pick("north"),
        notify=notes.append,
        runner=FakeRunner(_cp(0, stdout=stdout)),
    )

    status = "enabled" if expected else "disabled"
    assert outcome.enabled is expected
    assert notes[-1].message == f"Feature :dark_mode is {status} in 'north'"


@pytest.mark.asyncio
async def test_check_non_zero_exit_is_failure(apartment_config: FeatureConfig) -> None:
    outcome = await run_action(
        apartment_config,
        FeatureAction.CHECK,
        "Dark Mode",
        chooser=_pick("north"),
        runner=FakeRunner(_cp(1, stdout="true", stderr="boom")),
    )

    assert outcome.state is ActionState.ERRORED
    assert outcome.enabled is None
    assert outcome.message == "Error checking feature: boom"


@pytest.mark.asyncio
async def test_strict_status_rejects_noisy_output(apartment_fields: dict[str, str]) -> None:
    config = build_config(**apartment_fields, strict_status=True)

    outcome = await run_action(
        config,
        FeatureAction.CHECK,
        "Dark Mode",
        chooser=_pick("north"),
        runner=FakeRunner(_cp(0, stdout="true-ish log line\nmaybe\n")),
    )

    assert isinstance(outcome.error, StatusParseError)


@pytest.mark.asyncio
async def test_cancelled_choice_is_neutral(apartment_config: FeatureConfig) -> None:
    notes: list[Notification] = []
    runner = FakeRunner(_cp(0))
    flow = FeatureActionFlow(apartment_config, FeatureAction.ENABLE, chooser=_cancel, notify=notes.append, runner=runner)

    outcome = await flow.run("Dark Mode")

    assert outcome.cancelled is True
    assert outcome.state is ActionState.DONE
    assert outcome.ok is False
    assert outcome.error is None
    assert notes[-1] == Notification(level=NotificationLevel.INFO, message="Cancelled")
    assert len(runner.commands) == 1
    assert flow.history == [
        ActionState.IDLE,
        ActionState.VALIDATING,
        ActionState.FETCHING_TENANTS,
        ActionState.AWAITING_TENANT_CHOICE,
        ActionState.DONE,
    ]


@pytest.mark.asyncio
async def test_successful_flow_walks_every_state(apartment_config: FeatureConfig) -> None:
    flow = FeatureActionFlow(apartment_config, "enable", chooser=_pick("south"), runner=FakeRunner(_cp(0)))

    await flow.run("Dark Mode")

    assert flow.history == [
        ActionState.IDLE,
        ActionState.VALIDATING,
        ActionState.FETCHING_TENANTS,
        ActionState.AWAITING_TENANT_CHOICE,
        ActionState.EXECUTING_ACTION,
        ActionState.REPORTING,
        ActionState.DONE,
    ]


@pytest.mark.asyncio
async def test_async_chooser_is_awaited(apartment_config: FeatureConfig) -> None:
    async def choose(tenants: Sequence[str], prompt: str) -> str | None:
        await asyncio.sleep(0)
        return tenants[0]

    outcome = await run_action(apartment_config, "enable", "beta", chooser=choose, runner=FakeRunner(_cp(0)))

    assert outcome.tenant == "north"


@pytest.mark.asyncio
async def test_unconfigured_flow_fails_fast() -> None:
    notes: list[Notification] = []
    runner = FakeRunner(_cp(0))

    outcome = await run_action(None, "enable", "beta", chooser=_pick("north"), notify=notes.append, runner=runner)

    assert isinstance(outcome.error, ConfigurationError)
    assert runner.commands == []
    assert [note.level for note in notes] == [NotificationLevel.ERROR]


@pytest.mark.asyncio
async def test_empty_selection_is_input_error(apartment_config: FeatureConfig) -> None:
    runner = FakeRunner(_cp(0))

    outcome = await run_action(apartment_config, "check", "   ", chooser=_pick("north"), runner=runner)

    assert isinstance(outcome.error, InputError)
    assert outcome.message == "Selected text is empty after normalization"
    assert runner.commands == []


@pytest.mark.asyncio
async def test_tenant_fetch_without_json_is_reported(apartment_config: FeatureConfig) -> None:
    notes: list[Notification] = []
    runner = FakeRunner(_cp(0), tenants_result=_cp(0, stdout="Booting\n"))

    outcome = await run_action(apartment_config, "enable", "beta", chooser=_pick("north"), notify=notes.append, runner=runner)

    assert isinstance(outcome.error, NoJsonFoundError)
    assert notes[-1].message.startswith("JSON not found in output:")
    assert len(runner.commands) == 1


@pytest.mark.asyncio
async def test_tenant_fetch_process_failure(apartment_config: FeatureConfig) -> None:
    runner = FakeRunner(_cp(0), tenants_result=_cp(1, stderr="could not connect to server"))

    outcome = await run_action(apartment_config, "enable", "beta", chooser=_pick("north"), runner=runner)

    assert isinstance(outcome.error, ProcessFailedError)
    assert outcome.message == "bin/rails runner failed: could not connect to server"


@pytest.mark.asyncio
async def test_spawn_failure_is_reported(apartment_config: FeatureConfig) -> None:
    spawn_failed = CommandResult(SPAWN_FAILED_EXIT_CODE, "", "", spawn_error="Could not start /bin/bash")
    runner = FakeRunner(_cp(0), tenants_result=spawn_failed)

    outcome = await run_action(apartment_config, "enable", "beta", chooser=_pick("north"), runner=runner)

    assert isinstance(outcome.error, SpawnFailedError)
    assert outcome.state is ActionState.ERRORED


@pytest.mark.asyncio
async def test_chooser_exception_does_not_escape(apartment_config: FeatureConfig) -> None:
    def broken(tenants: Sequence[str], prompt: str) -> str | None:
        raise RuntimeError("menu crashed")

    outcome = await run_action(apartment_config, "enable", "beta", chooser=broken, runner=FakeRunner(_cp(0)))

    assert outcome.state is ActionState.ERRORED
    assert "menu crashed" in outcome.message


@pytest.mark.asyncio
async def test_flow_instances_run_once(apartment_config: FeatureConfig) -> None:
    flow = FeatureActionFlow(apartment_config, "enable", chooser=_cancel, runner=FakeRunner(_cp(0)))
    await flow.run("beta")

    with pytest.raises(RuntimeError):
        await flow.run("beta")


@pytest.mark.asyncio
async def test_concurrent_actions_complete_independently(apartment_config: FeatureConfig) -> None:
    release_enable = asyncio.Event()

    class GatedRunner(FakeRunner):
        async def __call__(self, command: str) -> CommandResult:
            if "enable" in command:
                await release_enable.wait()
            return await super().__call__(command)

    enable_runner = GatedRunner(_cp(0))
    check_runner = FakeRunner(_cp(0, stdout="true\n"))
    enable_task = asyncio.create_task(
        run_action(apartment_config, "enable", "Dark Mode", chooser=_pick("south"), runner=enable_runner)
    )
    check_outcome = await run_action(
        apartment_config, "check", "Dark Mode", chooser=_pick("north"), runner=check_runner
    )

    assert check_outcome.ok is True
    assert check_outcome.enabled is True
    assert not enable_task.done()

    release_enable.set()
    enable_outcome = await enable_task

    assert enable_outcome.ok is True
    assert enable_outcome.tenant == "south"


@pytest.mark.asyncio
async def test_fetch_tenants_returns_names(apartment_config: FeatureConfig) -> None:
    runner = FakeRunner(_cp(0))

    assert await fetch_tenants(apartment_config, runner) == ["north", "south"]


@pytest.mark.asyncio
async def test_fetch_tenants_empty_list(apartment_config: FeatureConfig) -> None:
    runner = FakeRunner(_cp(0), tenants_result=_cp(0, stdout="[]\n"))

    with pytest.raises(EmptyTenantListError):
        await fetch_tenants(apartment_config, runner)


@pytest.mark.asyncio
async def test_nul_in_tenant_name_is_reported_as_spawn_failure(
    apartment_config: FeatureConfig, tmp_path: Path
) -> None:
    shell = ProcessRunner("/bin/sh", cwd=tmp_path)

    async def runner(command: str) -> CommandResult:
        if ".pluck(:name).to_json" in command:
            return _cp(0, stdout='["a\\u0000b"]\n')
        return await shell(command)

    def choose_first(tenants: Sequence[str], prompt: str) -> str | None:
        return tenants[0]

    outcome = await run_action(apartment_config, "enable", "beta", chooser=choose_first, runner=runner)

    assert isinstance(outcome.error, SpawnFailedError)
    assert outcome.error.code == ExitCode.PROCESS_ERROR
    assert outcome.message.startswith("Error enabling feature: Could not start /bin/sh")
