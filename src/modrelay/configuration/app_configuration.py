from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict, List
import yaml

from modrelay.configuration.case_id_settings import CaseIdSettings
from modrelay.configuration.identity_settings import (
    DEFAULT_ITERATIONS,
    DEFAULT_KEY_LENGTH,
    IdentityConfig,
)
from modrelay.util.logger import get_logger

logger = get_logger("app_configuration")


DEFAULT_DB_PATH = Path("./data/modrelay.db")

DB_PATH_ENV_VAR = "MODRELAY_DB_PATH"
ADMINS_ENV_VAR = "ADMIN_USER_IDS"


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed properties for every setting the moderation core reads. Environment
    variables override or extend the file where noted on each property.
    Uses fcntl file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config %s is not a mapping, ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping (do not mutate)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """SQLite file location; ``MODRELAY_DB_PATH`` wins over ``database.path``."""
        env_path = os.getenv(DB_PATH_ENV_VAR)
        if env_path:
            return Path(env_path)
        value = self._section("database").get("path")
        return Path(value) if value else DEFAULT_DB_PATH

    @property
    def case_ids(self) -> CaseIdSettings:
        return CaseIdSettings(self._section("case_ids"))

    @property
    def hash_iterations(self) -> int:
        return int(self._section("identity").get("iterations", DEFAULT_ITERATIONS))

    @property
    def hash_key_length(self) -> int:
        return int(self._section("identity").get("key_length", DEFAULT_KEY_LENGTH))

    def identity_config(self) -> IdentityConfig:
        """Build the hasher config from the file parameters and the ``HASH_SALT`` secret.

        Raises:
            ConfigurationError: If ``HASH_SALT`` is unset or empty.
        """
        return IdentityConfig.from_environment(
            iterations=self.hash_iterations,
            key_length=self.hash_key_length,
        )

    @property
    def admin_user_ids(self) -> List[str]:
        """Moderators allowed to ban and unban.

        Union of ``moderation.admin_user_ids`` and the comma separated
        ``ADMIN_USER_IDS`` environment variable, blanks removed, order kept.
        """
        configured = self._section("moderation").get("admin_user_ids") or []
        if isinstance(configured, str):
            configured = configured.split(",")
        from_env = os.getenv(ADMINS_ENV_VAR, "").split(",")

        admins: List[str] = []
        for raw in [*configured, *from_env]:
            user_id = str(raw).strip()
            if user_id and user_id not in admins:
                admins.append(user_id)
        return admins

    @property
    def ban_list_message_limit(self) -> int:
        """Maximum characters per ban list message (the platform caps messages near 3000)."""
        return int(self._section("moderation").get("ban_list_message_limit", 2500))

    @property
    def default_ban_reason(self) -> str:
        value = self._section("moderation").get("default_reason")
        return str(value) if value else "No reason"

