"""Tests for worker environment loading."""

from autogoals.env import is_env_ignored, load_environment


class TestLoadEnvironment:
    """Tests for load_environment."""

    def test_host_api_key_passed_through(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "host-key")
        assert load_environment(tmp_path) == {"ANTHROPIC_API_KEY": "host-key"}

    def test_nothing_set(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        assert load_environment(tmp_path) == {}

    def test_env_file_overrides_host(self, tmp_path, monkeypatch):
        """Values from .env win over the host environment."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "host-key")
        (tmp_path / ".env").write_text(
            "# comment\nANTHROPIC_API_KEY=file-key\nDATABASE_URL=\"postgres://db/app\"\nexport DEBUG=1\n"
        )

        env = load_environment(tmp_path)

        assert env == {
            "ANTHROPIC_API_KEY": "file-key",
            "DATABASE_URL": "postgres://db/app",
            "DEBUG": "1",
        }

    def test_valueless_keys_skipped(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        (tmp_path / ".env").write_text("EMPTY\nSET=yes\n")
        assert load_environment(tmp_path) == {"SET": "yes"}


class TestIsEnvIgnored:
    """Tests for is_env_ignored."""

    def test_no_gitignore(self, tmp_path):
        assert is_env_ignored(tmp_path) is False

    def test_listed(self, tmp_path):
        (tmp_path / ".gitignore").write_text("node_modules/\n.env\n")
        assert is_env_ignored(tmp_path) is True

    def test_rooted_pattern(self, tmp_path):
        (tmp_path / ".gitignore").write_text("/.env\n")
        assert is_env_ignored(tmp_path) is True

    def test_not_listed(self, tmp_path):
        (tmp_path / ".gitignore").write_text(".env.example\n")
        assert is_env_ignored(tmp_path) is False
