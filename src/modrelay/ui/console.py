"""Interactive admin console for a running Modrelay instance."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
import os

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import PromptSession

from modrelay.database.database import Database
from modrelay.errors import ModerationError
from modrelay.moderation.moderation_commands import CommandReply, ModerationCommands
from modrelay.moderation.moderation_engine import ModerationEngine
from modrelay.util.logger import get_logger

# Acts as an admin in ModerationCommands; never a real platform id
CONSOLE_OPERATOR = "console"

# Box drawing helpers for aligned console output
BOX_WIDTH = 45

def box_title(title: str) -> list[str]:
    inner_width = BOX_WIDTH - 2
    pad_left = (inner_width - len(title)) // 2
    pad_right = inner_width - len(title) - pad_left
    return [
        f"╔{'═' * inner_width}╗",
        f"║{' ' * pad_left}{title}{' ' * pad_right}║",
        f"╚{'═' * inner_width}╝"
    ]

logger = get_logger("console")

CommandHandler = Callable[["ConsoleControl", list[str]], Awaitable[None]]


@dataclass
class Command:
    """Definition of a console command."""
    name: str
    handler: CommandHandler
    aliases: list[str]
    description: str
    usage: str = ""

    def matches(self, input_cmd: str) -> bool:
        return input_cmd == self.name or input_cmd in self.aliases


def console_print(message: str, style: str = "") -> None:
    """Render text via prompt_toolkit without breaking the active prompt."""
    formatted: FormattedText | str
    if style:
        formatted = FormattedText([(style, message)])
    else:
        formatted = message
    print_formatted_text(formatted)


def print_reply(reply: CommandReply) -> None:
    for message in reply.messages:
        console_print(message)
    console_print("")


class ConsoleControl:
    """State shared by console commands: the engine, the command layer and the shutdown flag."""

    def __init__(self, database: Database, engine: ModerationEngine, commands: ModerationCommands) -> None:
        self.shutdown_event = asyncio.Event()
        self.database = database
        self.engine = engine
        self.commands = commands

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    def stop(self) -> None:
        self.shutdown_event.set()

    def is_shutdown_requested(self) -> bool:
        return self.shutdown_event.is_set()


# ==================== Command Handlers ====================

async def cmd_help(control: ConsoleControl, args: list[str]) -> None:
    """Display available commands and their descriptions."""
    for line in box_title("Console Commands Reference"):
        console_print(line, "ansigreen")

    for cmd in COMMANDS:
        aliases_str = f" (aliases: {', '.join(cmd.aliases)})" if cmd.aliases else ""
        console_print(f"\n  {cmd.name}{aliases_str}", "ansicyan")
        console_print(f"    {cmd.description}")
        if cmd.usage:
            console_print(f"    Usage: {cmd.usage}", "ansibrightblack")

    console_print("")


async def cmd_status(control: ConsoleControl, args: list[str]) -> None:
    """Display database status and the number of active bans."""
    for line in box_title("Gateway Status"):
        console_print(line, "ansiblue")

    if control.database.initialized:
        console_print(f"  Database:   🟢 Open ({control.database.db_path})")
        bans = await control.engine.list_bans()
        console_print(f"  Bans:       {len(bans)} active")
    else:
        console_print("  Database:   🔴 Not initialized")

    console_print("")


async def cmd_bans(control: ConsoleControl, args: list[str]) -> None:
    print_reply(await control.commands.list_bans(CONSOLE_OPERATOR))


async def cmd_ban(control: ConsoleControl, args: list[str]) -> None:
    print_reply(await control.commands.ban(CONSOLE_OPERATOR, " ".join(args)))


async def cmd_unban(control: ConsoleControl, args: list[str]) -> None:
    print_reply(await control.commands.unban(CONSOLE_OPERATOR, " ".join(args)))


async def cmd_case(control: ConsoleControl, args: list[str]) -> None:
    print_reply(await control.commands.case(CONSOLE_OPERATOR, " ".join(args)))


async def cmd_submission(control: ConsoleControl, args: list[str]) -> None:
    print_reply(await control.commands.submission(CONSOLE_OPERATOR, " ".join(args)))


async def cmd_deny(control: ConsoleControl, args: list[str]) -> None:
    """Deny a pending submission from the console."""
    if len(args) != 1:
        console_print("Usage: deny <submission id>", "ansiyellow")
        return
    if await control.engine.deny(args[0], CONSOLE_OPERATOR):
        console_print(f"Submission #{args[0]} denied.", "ansigreen")
    else:
        console_print(f"Submission #{args[0]} is unknown or already reviewed.", "ansiyellow")


async def cmd_stats(control: ConsoleControl, args: list[str]) -> None:
    """Print store query timings; ``stats reset`` clears them."""
    if args and args[0] == "reset":
        control.database.reset_db_performance_stats()
        console_print("Statistics reset.", "ansigreen")
        return
    console_print(control.database.db_perf_mon.get_summary())
    console_print("")


async def cmd_clear(control: ConsoleControl, args: list[str]) -> None:
    """Clear the console screen."""
    os.system('cls' if os.name == 'nt' else 'clear')
    console_print("Console cleared.", "ansigreen")


async def cmd_shutdown(control: ConsoleControl, args: list[str]) -> None:
    """Request graceful shutdown."""
    console_print("Shutdown requested.", "ansiyellow")
    control.request_shutdown()


# ==================== Command Registry ====================

COMMANDS: list[Command] = [
    Command(
        name="help",
        handler=cmd_help,
        aliases=["h", "?"],
        description="Show this help message with all available commands",
    ),
    Command(
        name="status",
        handler=cmd_status,
        aliases=["stat", "info"],
        description="Display database status and active ban count",
    ),
    Command(
        name="bans",
        handler=cmd_bans,
        aliases=["list-bans", "lb"],
        description="List every active ban, oldest first",
    ),
    Command(
        name="ban",
        handler=cmd_ban,
        aliases=[],
        description="Ban a user hash (re-banning replaces the reason and case id)",
        usage="ban <hash> [reason]",
    ),
    Command(
        name="unban",
        handler=cmd_unban,
        aliases=[],
        description="Lift a ban by user hash or case id",
        usage="unban <hash|case id>",
    ),
    Command(
        name="case",
        handler=cmd_case,
        aliases=["c"],
        description="Show the ban recorded under a case id",
        usage="case <case id>",
    ),
    Command(
        name="submission",
        handler=cmd_submission,
        aliases=["sub", "s"],
        description="Show a submission and its author's ban state",
        usage="submission <id>",
    ),
    Command(
        name="deny",
        handler=cmd_deny,
        aliases=[],
        description="Deny a pending submission",
        usage="deny <id>",
    ),
    Command(
        name="stats",
        handler=cmd_stats,
        aliases=["perf"],
        description="Show database query timings",
        usage="stats [reset]",
    ),
    Command(
        name="clear",
        handler=cmd_clear,
        aliases=["cls"],
        description="Clear the console screen",
    ),
    Command(
        name="shutdown",
        handler=cmd_shutdown,
        aliases=["stop", "quit", "exit"],
        description="Close the database and exit",
    ),
]


# ==================== Command Dispatcher ====================

async def handle_console_command(command: str, control: ConsoleControl) -> None:
    """Interpret and execute a single console command line."""
    if not command.strip():
        return

    parts = command.strip().split()
    cmd_name = parts[0].lower()
    args = parts[1:]

    for cmd in COMMANDS:
        if cmd.matches(cmd_name):
            try:
                await cmd.handler(control, args)
            except ModerationError as exc:
                console_print(f"Error: {exc}", "ansired")
            except Exception as exc:
                logger.exception("Error executing command '%s': %s", cmd_name, exc)
                console_print(f"Error executing command: {exc}", "ansired")
            return

    console_print(f"Unknown command '{cmd_name}'. Type 'help' for available commands.", "ansired")


async def run_console(control: ConsoleControl) -> None:
    """Run the interactive admin console until shutdown is requested."""
    session = PromptSession("> ")

    for line in box_title("Modrelay Admin Console"):
        console_print(line, "ansigreen")
    console_print("Type 'help' for available commands or 'exit' to quit.\n", "ansibrightblack")

    with patch_stdout():
        while not control.is_shutdown_requested():
            try:
                line = await session.prompt_async()
                if line.strip():
                    await handle_console_command(line, control)
            except (EOFError, KeyboardInterrupt):
                console_print("\nShutdown requested by user.", "ansiyellow")
                control.request_shutdown()
                break


@asynccontextmanager
async def console_session(control: ConsoleControl) -> AsyncIterator[ConsoleControl]:
    """Run the console as a background task, cancelling it on exit."""
    console_task = asyncio.create_task(run_console(control))
    try:
        yield control
    finally:
        control.stop()
        console_task.cancel()
        try:
            await console_task
        except asyncio.CancelledError:
            pass
