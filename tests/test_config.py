"""
Tests for configuration loading and the CLI.
"""

from click.testing import CliRunner

from mint_gateway.cli import main
from mint_gateway.config import GatewayConfig
from mint_gateway.utils.pow import verify_solution


def test_defaults():
    config = GatewayConfig()

    assert config.POW_DIFFICULTY == 4
    assert config.CHALLENGE_TTL_SECONDS == 300
    assert config.MAX_PER_IDENTITY == 10
    assert config.public_supply == 9_750
    assert config.BATCH_SIZE == 10
    assert config.MAX_SEND_ATTEMPTS == 5


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MINT_POW_DIFFICULTY", "5")
    monkeypatch.setenv("MINT_TOTAL_SUPPLY", "100")
    monkeypatch.setenv("MINT_RESERVED_COUNT", "10")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")

    config = GatewayConfig.from_env(str(tmp_path / "missing.env"))

    assert config.POW_DIFFICULTY == 5
    assert config.public_supply == 90
    assert config.REDIS_URL == "redis://localhost:6379/0"


def test_from_env_file(monkeypatch, tmp_path):
    monkeypatch.delenv("MINT_MAX_PER_IDENTITY", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("MINT_MAX_PER_IDENTITY=2\n")

    try:
        assert GatewayConfig.from_env(str(env_file)).MAX_PER_IDENTITY == 2
    finally:
        monkeypatch.delenv("MINT_MAX_PER_IDENTITY", raising=False)


def test_validate():
    assert "MINT_CHALLENGE_SECRET is using the development default" in GatewayConfig().validate()
    assert GatewayConfig(CHALLENGE_SECRET="s").validate() == []

    problems = GatewayConfig(CHALLENGE_SECRET="s", RESERVED_COUNT=20_000, POW_DIFFICULTY=0).validate()
    assert len(problems) == 2


def test_summary_never_includes_secret():
    summary = "\n".join(GatewayConfig(CHALLENGE_SECRET="super-secret").summary())
    assert "super-secret" not in summary


def test_cli_solve():
    result = CliRunner().invoke(main, ["solve", "tok", "abc123", "-d", "2"])

    assert result.exit_code == 0
    candidate = result.stdout.strip().splitlines()[-1]
    assert verify_solution("tok", "abc123", candidate, 2)
