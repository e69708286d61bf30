# Tests for the recent-vaults registry

import os

from sentinelvault import config, vault_manager


def touch_vault(directory, key):
    with open(os.path.join(str(directory), key + config.VAULT_FILE_SUFFIX), "wb") as f:
        f.write(b"x")


class TestRecentVaults:
    def test_empty_directory(self, tmp_path):
        assert vault_manager.get_recent_storage_keys(str(tmp_path)) == []
        assert vault_manager.list_storage_keys(str(tmp_path)) == []

    def test_missing_directory(self, tmp_path):
        assert vault_manager.list_storage_keys(str(tmp_path / "absent")) == []

    def test_most_recent_first_and_unique(self, tmp_path):
        for key in ("work", "home", "travel"):
            touch_vault(tmp_path, key)
        for key in ("work", "home", "work", "travel"):
            vault_manager.save_recent_storage_key(key, str(tmp_path))
        assert vault_manager.get_recent_storage_keys(str(tmp_path)) == ["travel", "work", "home"]

    def test_deleted_vaults_are_dropped(self, tmp_path):
        touch_vault(tmp_path, "work")
        vault_manager.save_recent_storage_key("work", str(tmp_path))
        vault_manager.save_recent_storage_key("gone", str(tmp_path))
        assert vault_manager.get_recent_storage_keys(str(tmp_path)) == ["work"]

    def test_capped_length(self, tmp_path):
        for i in range(config.MAX_RECENT_VAULTS + 5):
            touch_vault(tmp_path, f"v{i}")
            vault_manager.save_recent_storage_key(f"v{i}", str(tmp_path))
        recent = vault_manager.get_recent_storage_keys(str(tmp_path))
        assert len(recent) == config.MAX_RECENT_VAULTS
        assert recent[0] == f"v{config.MAX_RECENT_VAULTS + 4}"

    def test_list_storage_keys_ignores_other_files(self, tmp_path):
        touch_vault(tmp_path, "work")
        touch_vault(tmp_path, "home")
        (tmp_path / ".work.abc.tmp").write_bytes(b"partial")
        (tmp_path / config.RECENT_VAULTS_FILE).write_text("work\n")
        assert vault_manager.list_storage_keys(str(tmp_path)) == ["home", "work"]

    def test_default_dir_honours_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv(config.CONFIG_DIR_ENV, str(tmp_path))
        assert vault_manager.default_vault_dir() == str(tmp_path)
