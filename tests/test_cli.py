"""
测试命令行入口与退出码
"""

import pytest

from forward_supervisor import __main__ as cli
from forward_supervisor.errors import AllLaunchesFailedError, ConnectivityError

CONFIG_YAML = """
kubectl: kubectl-does-not-exist
logging:
  file: supervisor.log
control:
  port: {port}
profiles:
  dev:
    namespace: backend
    forwards:
      - {{name: api, type: deployment, local_port: 18080, remote_port: 80}}
  staging:
    namespace: web
    forwards: []
"""


@pytest.fixture
def config_file(tmp_path, free_port):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML.format(port=free_port()), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda config: None)


def test_help(capsys):
    assert cli.main(["help"]) == 0
    assert "run" in capsys.readouterr().out
    assert cli.main([]) == 0


def test_missing_config(tmp_path, capsys):
    assert cli.main(["--config", str(tmp_path / "nope.yaml"), "run", "dev"]) == 1
    assert "Config file not found" in capsys.readouterr().err


def test_unknown_profile(config_file, capsys):
    assert cli.main(["--config", str(config_file), "run", "prod"]) == 1
    err = capsys.readouterr().err
    assert "Profile 'prod' not found" in err
    assert "dev, staging" in err


def test_missing_tool(config_file, capsys):
    assert cli.main(["--config", str(config_file), "run", "dev"]) == 1
    assert "kubectl-does-not-exist" in capsys.readouterr().err


@pytest.mark.parametrize(
    "error",
    [ConnectivityError("Cannot reach cluster (current context): refused"), AllLaunchesFailedError({})],
)
def test_fatal_startup_errors(config_file, monkeypatch, capsys, error):
    async def _fail(config, profile, kubectl):
        raise error

    monkeypatch.setattr(cli, "require_tool", lambda name: "/usr/bin/kubectl")
    monkeypatch.setattr(cli, "run_supervisor", _fail)

    assert cli.main(["--config", str(config_file), "run", "dev"]) == 1
    assert str(error) in capsys.readouterr().err


def test_clean_run_exits_zero(config_file, monkeypatch):
    seen = {}

    async def _ok(config, profile, kubectl):
        seen["profile"] = profile.name
        seen["kubectl"] = kubectl

    monkeypatch.setattr(cli, "require_tool", lambda name: "/usr/bin/kubectl")
    monkeypatch.setattr(cli, "run_supervisor", _ok)

    assert cli.main(["--config", str(config_file), "run", "dev"]) == 0
    assert seen == {"profile": "dev", "kubectl": "/usr/bin/kubectl"}


def test_profiles(config_file, capsys):
    assert cli.main(["--config", str(config_file), "profiles"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith("dev")
    assert out[1].startswith("staging")


def test_show_logs(config_file, capsys):
    log_file = config_file.parent / "supervisor.log"
    log_file.write_text("".join(f"line {i}\n" for i in range(10)), encoding="utf-8")

    assert cli.main(["--config", str(config_file), "show-logs", "-n", "3"]) == 0
    assert capsys.readouterr().out.splitlines() == ["line 7", "line 8", "line 9"]


MIXED_YAML = """
kubectl: kubectl-does-not-exist
logging:
  file: supervisor.log
profiles:
  dev:
    forwards:
      - {name: api, type: deployment, local_port: 18080, remote_port: 80}
  staging:
    forwards:
      - {name: web, type: deployment, local_port: 9000, remote_port: 80}
      - {name: admin, type: service, local_port: 9000, remote_port: 8080}
"""


@pytest.fixture
def mixed_config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(MIXED_YAML, encoding="utf-8")
    (tmp_path / "supervisor.log").write_text("line 0\n", encoding="utf-8")
    return path


def test_invalid_profile_does_not_break_other_commands(mixed_config_file, monkeypatch, capsys):
    monkeypatch.setattr(cli, "require_tool", lambda name: "/usr/bin/kubectl")

    assert cli.main(["--config", str(mixed_config_file), "show-logs"]) == 0
    assert capsys.readouterr().out.splitlines() == ["line 0"]

    assert cli.main(["--config", str(mixed_config_file), "profiles"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "dev  (namespace=default, forwards=1)"
    assert out[1].startswith("staging  (namespace=default, forwards=2)  invalid:")


def test_run_invalid_profile(mixed_config_file, monkeypatch, capsys):
    seen = []

    async def _ok(config, profile, kubectl):
        seen.append(profile.name)

    monkeypatch.setattr(cli, "require_tool", lambda name: "/usr/bin/kubectl")
    monkeypatch.setattr(cli, "run_supervisor", _ok)

    assert cli.main(["--config", str(mixed_config_file), "run", "staging"]) == 1
    assert "duplicate local ports: 9000 used by web, admin" in capsys.readouterr().err

    assert cli.main(["--config", str(mixed_config_file), "run", "dev"]) == 0
    assert seen == ["dev"]


def test_status_without_running_supervisor(config_file, capsys):
    assert cli.main(["--config", str(config_file), "status"]) == 1
    assert "cannot query supervisor" in capsys.readouterr().err


def test_stop_without_running_supervisor(config_file, capsys):
    assert cli.main(["--config", str(config_file), "stop"]) == 1
    assert "cannot reach supervisor" in capsys.readouterr().err
