import base64
import json
import os
from unittest.mock import patch

import pytest

from regtags.registry.auth import resolve_credentials


def _write_docker_config(home, auths):
    config_dir = home / ".docker"
    config_dir.mkdir()
    (config_dir / "config.json").write_text(json.dumps({"auths": auths}), encoding="utf-8")


def _b64(value):
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


@pytest.fixture
def home(tmp_path):
    with patch("regtags.registry.auth.Path.home", return_value=tmp_path):
        yield tmp_path


class TestResolveCredentials:
    """Test credential resolution precedence."""

    def test_cli_override(self, home):
        with patch.dict(os.environ, {"REGTAGS_USERNAME": "g", "REGTAGS_PASSWORD": "g"}, clear=True):
            user, pwd = resolve_credentials(
                "registry.example.com",
                cli_auths=["other.example.com=x:y", "registry.example.com=cli_user:cli:pass"],
            )
        assert user == "cli_user"
        # Only the first colon separates user from password.
        assert pwd == "cli:pass"

    def test_cli_override_docker_hub_alias(self, home):
        with patch.dict(os.environ, {}, clear=True):
            user, pwd = resolve_credentials(
                "docker.io", cli_auths=["registry-1.docker.io=alias_user:alias_pass"]
            )
        assert (user, pwd) == ("alias_user", "alias_pass")

    def test_malformed_cli_override_ignored(self, home):
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("registry.example.com", cli_auths=["garbage"]) == (
                None,
                None,
            )

    def test_domain_env_beats_global(self, home):
        env = {
            "REGTAGS_AUTH_REGISTRY_EXAMPLE_COM_USERNAME": "domain_user",
            "REGTAGS_AUTH_REGISTRY_EXAMPLE_COM_PASSWORD": "domain_pass",
            "REGTAGS_USERNAME": "global_user",
            "REGTAGS_PASSWORD": "global_pass",
        }
        with patch.dict(os.environ, env, clear=True):
            assert resolve_credentials("registry.example.com") == ("domain_user", "domain_pass")

    def test_domain_env_with_port(self, home):
        env = {
            "REGTAGS_AUTH_LOCALHOST_5000_USERNAME": "local",
            "REGTAGS_AUTH_LOCALHOST_5000_PASSWORD": "secret",
        }
        with patch.dict(os.environ, env, clear=True):
            assert resolve_credentials("localhost:5000") == ("local", "secret")

    def test_domain_env_docker_hub_alias(self, home):
        env = {
            "REGTAGS_AUTH_REGISTRY_1_DOCKER_IO_USERNAME": "hub_user",
            "REGTAGS_AUTH_REGISTRY_1_DOCKER_IO_PASSWORD": "hub_pass",
        }
        with patch.dict(os.environ, env, clear=True):
            assert resolve_credentials("docker.io") == ("hub_user", "hub_pass")

    def test_global_env(self, home):
        env = {"REGTAGS_USERNAME": "global_user", "REGTAGS_PASSWORD": "global_pass"}
        with patch.dict(os.environ, env, clear=True):
            assert resolve_credentials("registry.example.com") == ("global_user", "global_pass")

    def test_global_env_needs_both(self, home):
        with patch.dict(os.environ, {"REGTAGS_USERNAME": "only_user"}, clear=True):
            assert resolve_credentials("registry.example.com") == (None, None)

    def test_docker_config(self, home):
        _write_docker_config(
            home, {"registry.example.com": {"auth": _b64("docker_user:docker_pass")}}
        )
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("registry.example.com") == ("docker_user", "docker_pass")

    def test_docker_config_hub_legacy_key(self, home):
        _write_docker_config(
            home, {"https://index.docker.io/v1/": {"auth": _b64("hub:secret")}}
        )
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("docker.io") == ("hub", "secret")

    def test_docker_config_bad_base64(self, home):
        _write_docker_config(home, {"registry.example.com": {"auth": "!!!"}})
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("registry.example.com") == (None, None)

    def test_docker_config_unreadable(self, home):
        (home / ".docker").mkdir()
        (home / ".docker" / "config.json").write_text("{not json", encoding="utf-8")
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("registry.example.com") == (None, None)

    def test_nothing_configured(self, home):
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("registry.example.com") == (None, None)
