"""
Anonymous Reply Moderation Gateway
==================================

Entry point: loads the environment and YAML configuration, opens the store,
wires the moderation engine and runs the admin console until shutdown. A chat
platform adapter embeds the same runtime and calls the engine directly.
"""

from __future__ import annotations

import asyncio
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from modrelay.configuration.app_configuration import AppConfig
from modrelay.database.database import Database
from modrelay.errors import ConfigurationError, StoreUnavailable
from modrelay.identity.hasher import IdentityHasher
from modrelay.moderation.case_allocator import CaseAllocator
from modrelay.moderation.moderation_commands import ModerationCommands
from modrelay.moderation.moderation_engine import ModerationEngine
from modrelay.ui.console import CONSOLE_OPERATOR, ConsoleControl, console_session
from modrelay.util.logger import get_logger

logger = get_logger("main")


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. MODRELAY_HOME environment variable, if set.
    2. If running frozen (PyInstaller, Nuitka), the executable's directory.
    3. Otherwise the project root two levels above this package.
    """
    if env_home := os.getenv("MODRELAY_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()


@dataclass
class Runtime:
    """Everything a transport adapter needs, wired together."""
    database: Database
    engine: ModerationEngine
    commands: ModerationCommands


def load_environment() -> None:
    """Load ``.env`` from the base directory into the process environment."""
    load_dotenv(dotenv_path=BASE_DIR / ".env")


def build_runtime(config: AppConfig) -> Runtime:
    """Construct the database, engine and command layer from configuration.

    Raises
    ------
    ConfigurationError
        If ``HASH_SALT`` is missing or the identity parameters are invalid.
    """
    identity = config.identity_config()
    hasher = IdentityHasher(identity)

    database = Database(config.database_path)
    allocator = CaseAllocator(database.bans, config.case_ids)
    engine = ModerationEngine(
        hasher,
        database.bans,
        database.messages,
        allocator,
        default_reason=config.default_ban_reason,
    )

    admins = config.admin_user_ids
    if not admins:
        logger.warning("No admin user ids configured; only the console can manage bans.")
    commands = ModerationCommands(
        engine,
        [*admins, CONSOLE_OPERATOR],
        handle_length=identity.handle_length,
        message_limit=config.ban_list_message_limit,
    )
    return Runtime(database=database, engine=engine, commands=commands)


async def async_main() -> int:
    """Bootstrap the store and console, returning an exit code."""
    load_environment()
    config = AppConfig((BASE_DIR / "config" / "app_config.yml").resolve())

    try:
        runtime = build_runtime(config)
    except ConfigurationError as exc:
        logger.critical("%s. Gateway cannot start.", exc)
        return 1

    try:
        await runtime.database.initialize()
    except StoreUnavailable as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    control = ConsoleControl(runtime.database, runtime.engine, runtime.commands)
    try:
        async with console_session(control):
            await control.shutdown_event.wait()
    except asyncio.CancelledError:
        logger.info("Console cancelled; proceeding to shutdown")
    finally:
        await runtime.database.shutdown()
        logger.info("Shutdown complete.")

    return 0


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    os.chdir(BASE_DIR)
    logger.info("Starting moderation gateway…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Interrupted; exiting.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
