from typer.testing import CliRunner

from formcraft.cli import cli
from formcraft.config import Settings
from formcraft.storage import init_storage

runner = CliRunner()


def test_create_superadmin(env, monkeypatch):
    monkeypatch.setenv("SEED_SUPER_ADMIN", "0")
    result = runner.invoke(
        cli,
        ["create-superadmin", "--username", "root", "--email", "root@example.com", "--password", "secret123"],
    )
    assert result.exit_code == 0, result.output
    assert "Created super admin root" in result.output

    storage = init_storage(Settings())
    try:
        user = storage.users.get_user_by_username("root")
        assert user["role"] == "super_admin"
    finally:
        storage.close()


def test_create_superadmin_rejects_duplicate(env):
    args = ["create-superadmin", "--username", "root", "--email", "root@example.com", "--password", "secret123"]
    assert runner.invoke(cli, args).exit_code == 0
    result = runner.invoke(cli, args)
    assert result.exit_code == 1
