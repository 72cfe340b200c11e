from pathlib import Path

import pytest

from slackcoder.agent.client import ClaudeAgentClient, ClientFactory
from slackcoder.config.schema import ClaudeConfig
from slackcoder.errors import AgentError


def test_build_options_from_config(tmp_path):
    factory = ClientFactory(ClaudeConfig(model="claude-opus-4-1", max_turns=5))
    hooks = {"PostToolUse": []}

    options = factory.build_options("be helpful", tmp_path, hooks)

    assert options.system_prompt == "be helpful"
    assert options.cwd == str(tmp_path)
    assert options.model == "claude-opus-4-1"
    assert options.permission_mode == "bypassPermissions"
    assert options.max_turns == 5
    assert options.hooks is hooks


def test_builder_defers_hooks():
    factory = ClientFactory(ClaudeConfig())
    build = factory.builder("prompt", Path("/tmp/repos/C1"))

    client = build({})

    assert isinstance(client, ClaudeAgentClient)
    assert client.options.cwd == "/tmp/repos/C1"


@pytest.mark.asyncio
async def test_query_requires_connection():
    client = ClientFactory(ClaudeConfig()).create("prompt", Path("."))
    with pytest.raises(AgentError, match="not connected"):
        await client.query("hello", "session-1")
    await client.disconnect()
