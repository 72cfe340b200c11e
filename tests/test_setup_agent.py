import pytest

from slackcoder.agent.hooks import create_todo_hooks
from slackcoder.agent.setup import SetupAgent, parse_repo_name
from slackcoder.channels.progress import ProgressTracker
from slackcoder.errors import SetupFailedError
from slackcoder.storage.workspace import Workspace

from tests.fakes import FakeClientFactory, FakeMessenger, make_result


@pytest.mark.parametrize("name,expected", [
    ("octo/repo", ("octo", "repo")),
    ("  tyrchen/rust-lib-template ", ("tyrchen", "rust-lib-template")),
    ("a.b/c_d", ("a.b", "c_d")),
])
def test_parse_repo_name(name, expected):
    assert parse_repo_name(name) == expected


@pytest.mark.parametrize("name", ["repo", "a/b/c", "/repo", "owner/", "own er/repo"])
def test_parse_repo_name_rejects(name):
    with pytest.raises(SetupFailedError):
        parse_repo_name(name)


@pytest.mark.asyncio
async def test_todo_hook_ignores_malformed_input():
    received = []

    async def on_plan(plan):
        received.append(plan)

    hooks = create_todo_hooks(on_plan)
    callback = hooks["PostToolUse"][0].hooks[0]

    assert hooks["PostToolUse"][0].matcher == "TodoWrite"
    assert await callback({"tool_input": {"todos": "oops"}}, "t1", None) == {}
    assert received == []

    await callback({"tool_input": {"todos": [{"content": "A", "status": "pending"}]}}, "t2", None)
    assert received[0].tasks[0].content == "A"


@pytest.mark.asyncio
async def test_setup_agent_runs_instructions_and_reports_progress(tmp_path):
    workspace = Workspace(tmp_path)
    factory = FakeClientFactory(
        responses=[make_result("Repository analysed")],
        todo_inputs=[{"todos": [{"content": "Clone", "activeForm": "Cloning", "status": "in_progress"}]}],
    )
    messenger = FakeMessenger()
    progress = ProgressTracker(messenger)
    agent = SetupAgent(factory, workspace, progress)

    result = await agent.run("C1", "octo/repo")

    assert result == "Repository analysed"
    client = factory.clients[tmp_path.name]
    (instructions, _), = client.queries
    assert "octo/repo" in instructions
    assert str(workspace.repo_path("C1")) in instructions
    assert str(workspace.system_prompt_path("C1")) in instructions
    assert client.disconnect_calls == 1
    assert ":hourglass_flowing_sand: Cloning" in messenger.sent[0][1]
    assert progress.live_message("C1") is None


@pytest.mark.asyncio
async def test_setup_agent_error_result_fails(tmp_path):
    factory = FakeClientFactory(responses=[make_result("clone failed", is_error=True)])
    agent = SetupAgent(factory, Workspace(tmp_path))

    with pytest.raises(SetupFailedError, match="clone failed"):
        await agent.run("C1", "octo/repo")


@pytest.mark.asyncio
async def test_setup_agent_wraps_connect_errors(tmp_path):
    factory = FakeClientFactory(fail_channels={tmp_path.name})
    agent = SetupAgent(factory, Workspace(tmp_path))

    with pytest.raises(SetupFailedError, match="connect failed"):
        await agent.run("C1", "octo/repo")


@pytest.mark.asyncio
async def test_setup_agent_missing_prompt_file(tmp_path):
    agent = SetupAgent(FakeClientFactory(), Workspace(tmp_path), prompt_path=str(tmp_path / "missing.md"))

    with pytest.raises(SetupFailedError, match="setup agent prompt"):
        await agent.run("C1", "octo/repo")


def test_setup_agent_custom_prompt(tmp_path):
    prompt = tmp_path / "setup.md"
    prompt.write_text("custom setup prompt", encoding="utf-8")
    agent = SetupAgent(FakeClientFactory(), Workspace(tmp_path), prompt_path=str(prompt))
    assert agent.load_system_prompt() == "custom setup prompt"
