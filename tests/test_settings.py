"""Tests for settings loading."""

from pathlib import Path

from rocketship.settings import RocketshipSettings, get_settings, reload_settings


class TestSettings:
    """Environment driven configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PULUMI_CONFIG_PASSPHRASE", raising=False)
        settings = RocketshipSettings(_env_file=None)

        assert settings.ssh_key_name == "deploy"
        assert settings.droplet_name == "rust-web"
        assert settings.region == "nyc3"
        assert settings.settle_mode == "sleep"
        assert settings.settle_seconds == 30
        assert settings.url == "https://pulumi.robbiemckinstry.tech"
        assert settings.remote_service_path == "/etc/systemd/system/rocket.service"
        assert settings.pulumi_config_passphrase == "rocketship"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("RS_DOMAIN", "example.org")
        monkeypatch.setenv("RS_SUBDOMAIN", "api")
        monkeypatch.setenv("RS_SETTLE_MODE", "probe")
        monkeypatch.setenv("RS_PRIVATE_KEY_PATH", "/tmp/key")
        settings = RocketshipSettings(_env_file=None)

        assert settings.fqdn == "api.example.org"
        assert settings.settle_mode == "probe"
        assert settings.private_key_path == Path("/tmp/key")

    def test_passphrase_aliases(self, monkeypatch):
        monkeypatch.setenv("PULUMI_CONFIG_PASSPHRASE", "from-pulumi")
        assert RocketshipSettings(_env_file=None).pulumi_config_passphrase == "from-pulumi"

        monkeypatch.setenv("RS_PULUMI_CONFIG_PASSPHRASE", "from-rocketship")
        assert RocketshipSettings(_env_file=None).pulumi_config_passphrase == "from-rocketship"

    def test_remote_service_path_strips_slash(self, settings):
        settings = settings.model_copy(update={"remote_service_dir": "/opt/units/", "service_name": "x.service"})
        assert settings.remote_service_path == "/opt/units/x.service"

    def test_reload(self, monkeypatch):
        monkeypatch.setenv("RS_STACK_NAME", "staging")
        monkeypatch.setattr("rocketship.settings._settings", None)

        reloaded = reload_settings()
        assert reloaded.stack_name == "staging"
        assert get_settings() is reloaded
