"""
CLI 命令模块 - slackcoder 的命令行命令定义。

- onboard：生成默认配置并创建工作区目录
- gateway：启动机器人（Socket Mode + 工作协程池 + 出站分发 + 定时清理）
- status：查看配置、工作区和已配置频道

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、颜色）
"""

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from slackcoder import __logo__, __version__

app = typer.Typer(
    name="slackcoder",
    help=f"{__logo__} slackcoder - Claude coding agents for Slack channels",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} slackcoder v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """slackcoder CLI 根命令回调。"""
    pass


@app.command()
def onboard():
    """初始化 slackcoder：写入默认配置文件，创建工作区目录。"""
    from slackcoder.config.loader import get_config_path, save_config
    from slackcoder.config.schema import Config
    from slackcoder.storage.workspace import Workspace

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    workspace = Workspace(config.workspace_path)
    workspace.ensure_workspace()
    console.print(f"[green]✓[/green] Created workspace at {workspace.base_path}")

    console.print(f"\n{__logo__} slackcoder is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your Slack bot and app tokens to [cyan]~/.slackcoder/config.json[/cyan]")
    console.print("     or export [cyan]SLACKCODER_SLACK__BOT_TOKEN[/cyan] / [cyan]SLACKCODER_SLACK__APP_TOKEN[/cyan]")
    console.print("  2. Start the bot: [cyan]slackcoder gateway[/cyan]")
    console.print("  3. Invite the bot to a channel and mention it with [cyan]owner/repo[/cyan]")


@app.command()
def gateway(
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Verbose (debug) logging"),
    logs: bool = typer.Option(True, "--logs/--no-logs", help="Show slackcoder runtime logs"),
):
    """
    启动 slackcoder 机器人。

    启动流程：
    1. 加载配置，创建消息总线、Slack 渠道、工作区、进度跟踪器
    2. 创建客户端工厂、初始化 Agent 和会话注册表
    3. 恢复所有已配置频道的会话
    4. 并发运行：Socket Mode 监听、工作协程池、出站分发、定时清理
    5. Ctrl+C 时通知各频道并在超时约束内释放所有会话
    """
    from slackcoder.agent.client import ClientFactory
    from slackcoder.agent.loop import AgentLoop
    from slackcoder.agent.setup import SetupAgent
    from slackcoder.bus.queue import MessageBus
    from slackcoder.channels.dedup import EventDeduplicator
    from slackcoder.channels.metadata import MetadataCache
    from slackcoder.channels.progress import ProgressTracker
    from slackcoder.channels.slack import SlackChannel
    from slackcoder.config.loader import load_config, validate_config
    from slackcoder.errors import ConfigError
    from slackcoder.housekeeping.service import HousekeepingService
    from slackcoder.session.registry import SessionRegistry
    from slackcoder.storage.workspace import Workspace

    if logs:
        logger.enable("slackcoder")
    else:
        logger.disable("slackcoder")
    if verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")

    config = load_config()
    try:
        validate_config(config)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("Fix it in ~/.slackcoder/config.json or via SLACKCODER_* environment variables (e.g. SLACKCODER_SLACK__BOT_TOKEN)")
        raise typer.Exit(1)

    console.print(f"{__logo__} Starting slackcoder gateway...")

    bus = MessageBus()
    dedup = EventDeduplicator()
    slack = SlackChannel(config.slack, bus, dedup)
    workspace = Workspace(config.workspace_path)
    workspace.ensure_workspace()
    progress = ProgressTracker(slack)
    factory = ClientFactory(config.claude)
    setup_agent = SetupAgent(
        factory,
        workspace,
        progress,
        prompt_path=config.agent.setup_prompt_path or None,
        max_repo_size_mb=config.workspace.max_repo_size_mb,
    )
    registry = SessionRegistry(workspace, factory, setup_agent, progress)
    metadata = MetadataCache(slack.channel_info, slack.user_info)
    agent_loop = AgentLoop(
        bus,
        registry,
        progress=progress,
        metadata=metadata,
        max_concurrent_requests=config.agent.max_concurrent_requests,
        lock_timeout=config.agent.lock_timeout_secs,
    )
    housekeeping = HousekeepingService(
        registry,
        dedup,
        interval_s=config.workspace.cleanup_interval_secs,
        idle_timeout=config.agent.agent_timeout_secs,
        event_ttl=config.agent.event_ttl_secs,
    )
    bus.subscribe_outbound(slack.name, slack.send)

    console.print(f"[green]✓[/green] Workspace: {workspace.base_path}")
    console.print(f"[green]✓[/green] Model: {config.claude.model}")
    console.print(f"[green]✓[/green] Workers: {config.agent.max_concurrent_requests}")

    async def run():
        await slack.authenticate()
        report = await registry.scan_and_restore(slack)
        console.print(
            f"[green]✓[/green] Restored {len(report.restored)} channel(s)"
            + (f", [red]{len(report.failed)} failed[/red]" if report.failed else "")
        )
        await housekeeping.start()
        try:
            await asyncio.gather(
                agent_loop.run(),
                bus.dispatch_outbound(),
                slack.start(),
            )
        except asyncio.CancelledError:
            console.print("\nShutting down...")
        finally:
            housekeeping.stop()
            agent_loop.stop()
            active = await registry.list_active(config.agent.list_lock_timeout_secs)
            logger.info(f"Active sessions at shutdown: {len(active)} idle, {len(registry) - len(active)} busy")
            await registry.shutdown(
                slack.send_shutdown_notice,
                notify_timeout=config.agent.shutdown_notify_timeout_secs,
                overall_timeout=config.agent.shutdown_timeout_secs,
            )
            await slack.stop()
            bus.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("Goodbye!")


@app.command()
def status():
    """显示配置文件、工作区、Token 配置情况以及已配置的频道。"""
    from slackcoder.config.loader import get_config_path, load_config
    from slackcoder.storage.workspace import Workspace

    config_path = get_config_path()
    config = load_config()
    workspace = Workspace(config.workspace_path)

    console.print(f"{__logo__} slackcoder Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Workspace: {workspace.base_path} {'[green]✓[/green]' if workspace.base_path.exists() else '[red]✗[/red]'}")
    console.print(f"Model: {config.claude.model}")
    console.print(f"Slack bot token: {'[green]✓[/green]' if config.slack.bot_token else '[dim]not set[/dim]'}")
    console.print(f"Slack app token: {'[green]✓[/green]' if config.slack.app_token else '[dim]not set[/dim]'}")

    channels = workspace.configured_channels()
    if not channels:
        console.print("\nNo configured channels.")
        return

    table = Table(title="Configured Channels")
    table.add_column("Channel", style="cyan")
    table.add_column("Repository path")
    table.add_column("System prompt")
    for channel_id in channels:
        table.add_row(
            channel_id,
            str(workspace.repo_path(channel_id)),
            str(workspace.system_prompt_path(channel_id)),
        )
    console.print(table)


if __name__ == "__main__":
    app()
