#!/usr/bin/env python3
"""
Unit tests for UserManager class functionality.
"""

import pytest

from vivienda_concierge import user_manager as user_manager_module
from vivienda_concierge.user_manager import UserConfig, UserManager, get_user_manager


def test_global_mode_uses_given_ids():
    manager = UserManager(auth_mode="global", authorized_users={1, 2})

    assert manager.is_authorized(1) is True
    assert manager.is_authorized(3) is False
    assert manager.is_authorized(None) is False
    assert manager.get_user_config(2) == UserConfig(user_id=2, name="Global User")


def test_authorized_users_copy_is_detached():
    manager = UserManager(auth_mode="global", authorized_users={1})
    manager.get_authorized_users().add(99)
    assert manager.is_authorized(99) is False


def test_user_scoped_mode_reads_yaml(tmp_path):
    users_file = tmp_path / "users.yaml"
    users_file.write_text(
        "users:\n"
        "  123456789:\n"
        "    name: Ana\n"
        "    username: ana_pisos\n"
        "  987654321:\n",
        encoding="utf-8",
    )

    manager = UserManager(auth_mode="user_scoped", users_file=str(users_file))

    assert manager.get_authorized_users() == {123456789, 987654321}
    assert manager.get_user_config(123456789).username == "ana_pisos"
    assert manager.get_user_config(987654321).name == "Unknown"


def test_missing_users_file_authorizes_nobody(tmp_path):
    manager = UserManager(auth_mode="user_scoped", users_file=str(tmp_path / "none.yaml"))
    assert manager.get_authorized_users() == set()


def test_file_without_users_section(tmp_path):
    users_file = tmp_path / "users.yaml"
    users_file.write_text("admins: []\n", encoding="utf-8")
    manager = UserManager(auth_mode="user_scoped", users_file=str(users_file))
    assert manager.get_authorized_users() == set()


def test_invalid_user_id_raises(tmp_path):
    users_file = tmp_path / "users.yaml"
    users_file.write_text("users:\n  not-a-number:\n    name: X\n", encoding="utf-8")
    with pytest.raises(ValueError):
        UserManager(auth_mode="user_scoped", users_file=str(users_file))


def test_reload_picks_up_changes(tmp_path):
    users_file = tmp_path / "users.yaml"
    users_file.write_text("users:\n  1:\n    name: A\n", encoding="utf-8")
    manager = UserManager(auth_mode="user_scoped", users_file=str(users_file))

    users_file.write_text("users:\n  2:\n    name: B\n", encoding="utf-8")
    manager.reload()

    assert manager.get_authorized_users() == {2}


def test_get_user_manager_is_a_singleton(monkeypatch):
    monkeypatch.setattr(user_manager_module, "UserManager", lambda: object())
    if hasattr(get_user_manager, "_instance"):
        monkeypatch.delattr(get_user_manager, "_instance")

    first = get_user_manager()
    assert get_user_manager() is first
    del get_user_manager._instance
