import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Set

import yaml

logger = logging.getLogger(__name__)


@dataclass
class UserConfig:
    """An allowlisted Telegram user."""

    user_id: int
    name: str
    username: Optional[str] = None


def users_from_ids(user_ids: Iterable[int]) -> Dict[int, UserConfig]:
    return {user_id: UserConfig(user_id=user_id, name="Global User") for user_id in user_ids}


def users_from_yaml(path: Path) -> Dict[int, UserConfig]:
    """Allowlist from a YAML file shaped like::

        users:
          123456789:
            name: Ana
            username: ana_pisos

    A missing file or section allows nobody; a non-numeric id is an error.
    """
    if not path.exists():
        logger.warning(f"⚠️ Users file {path} not found, nobody is authorized")
        return {}

    with path.open(encoding="utf-8") as f:
        document = yaml.safe_load(f) or {}

    entries = document.get("users") if isinstance(document, dict) else None
    if not entries:
        logger.warning(f"No users section found in {path}")
        return {}

    users = {}
    for raw_id, details in entries.items():
        details = details or {}
        user_id = int(raw_id)
        users[user_id] = UserConfig(
            user_id=user_id,
            name=details.get("name", "Unknown"),
            username=details.get("username"),
        )
    return users


class UserManager:
    """Decides which Telegram users may talk to the bot.

    ``global`` mode takes the ids from ``AUTHORIZED_USERS``; ``user_scoped``
    mode reads them, with names, from ``USER_CONFIG_FILE``.
    """

    def __init__(
        self,
        auth_mode: Optional[str] = None,
        users_file: Optional[str] = None,
        authorized_users: Optional[Set[int]] = None,
    ):
        from .config import AUTH_MODE, USER_CONFIG_FILE

        self.auth_mode = auth_mode or AUTH_MODE
        self.users_file = Path(users_file or USER_CONFIG_FILE or "users.yml")
        self._seed_users = authorized_users
        self.users: Dict[int, UserConfig] = {}
        self.reload()

    def reload(self) -> None:
        if self.auth_mode == "user_scoped":
            try:
                self.users = users_from_yaml(self.users_file)
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.error(f"❌ Could not load users from {self.users_file}: {e}")
                raise
        else:
            from .config import AUTHORIZED_USERS

            seed = self._seed_users if self._seed_users is not None else AUTHORIZED_USERS
            self.users = users_from_ids(seed)
        logger.info(f"🔐 Auth mode {self.auth_mode}: {len(self.users)} authorized users")

    def is_authorized(self, user_id: Optional[int]) -> bool:
        return user_id is not None and user_id in self.users

    def get_user_config(self, user_id: int) -> Optional[UserConfig]:
        return self.users.get(user_id)

    def get_authorized_users(self) -> Set[int]:
        return set(self.users)


def get_user_manager() -> UserManager:
    """Process-wide instance, built on first use."""
    if not hasattr(get_user_manager, "_instance"):
        get_user_manager._instance = UserManager()
    return get_user_manager._instance
