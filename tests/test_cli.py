import signal

import pytest

from crm_migration import cli
from crm_migration.cancellation import CancellationToken
from crm_migration.errors import StoreConnectionError
from crm_migration.models.migration import MigrationRun, ReconciliationResult, RunMode, RunStatus, TableStatus

install_interrupt_handler = cli._install_interrupt_handler

SOURCE_VARS = ["VITE_SUPABASE_URL", "SUPABASE_URL", "VITE_SUPABASE_ANON_KEY", "SUPABASE_KEY"]


@pytest.fixture(autouse=True)
def no_signal_handlers(monkeypatch):
    monkeypatch.setattr(cli, "_install_interrupt_handler", lambda token: None)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in SOURCE_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MIGRATION_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.chdir(tmp_path)


def finished_run(status=RunStatus.COMPLETED, mode=RunMode.MIGRATE):
    run = MigrationRun(mode=mode)
    branches = run.add_table("branches", 0)
    branches.status = TableStatus.COMPLETED
    branches.extracted = branches.loaded = 3
    leads = run.add_table("leads", 1)
    leads.mark_failed("Failed reading leads at offset 1000: HTTP 500")
    leads.resume_offset = 1000
    run.add_reconciliation(ReconciliationResult("branches", 3, 3))
    run.add_reconciliation(ReconciliationResult("leads", 1500, 0))
    run.status = status
    run.seal()
    return run


def test_no_command_prints_help(capsys):
    assert cli.main([]) == cli.EXIT_FATAL
    assert "usage" in capsys.readouterr().out


def test_missing_credentials_exit_1(clean_env, capsys):
    assert cli.main(["migrate"]) == cli.EXIT_FATAL
    assert "VITE_SUPABASE_URL" in capsys.readouterr().out


def test_missing_staging_directory_exit_1(clean_env, capsys):
    assert cli.main(["import"]) == cli.EXIT_FATAL
    assert "Data directory not found" in capsys.readouterr().out


def test_connection_error_exit_1(clean_env, monkeypatch):
    def unreachable(settings, token):
        raise StoreConnectionError("target", "Cannot connect")

    monkeypatch.setitem(cli.COMMANDS, "migrate", unreachable)

    assert cli.main(["migrate"]) == cli.EXIT_FATAL


def test_failed_tables_still_exit_0(clean_env, monkeypatch, capsys):
    monkeypatch.setitem(cli.COMMANDS, "migrate", lambda settings, token: finished_run())

    assert cli.main(["migrate"]) == cli.EXIT_OK

    out = capsys.readouterr().out
    assert "MIGRATE COMPLETE" in out
    assert "Records Loaded: 3" in out
    assert "✗ leads" in out
    assert "resume at offset 1000" in out
    assert "Verified: 1/2 tables match" in out


def test_cancelled_run_exit_130(clean_env, monkeypatch, capsys):
    monkeypatch.setitem(cli.COMMANDS, "import", lambda settings, token: finished_run(RunStatus.CANCELLED, RunMode.IMPORT))

    assert cli.main(["import"]) == cli.EXIT_CANCELLED
    assert "IMPORT CANCELLED" in capsys.readouterr().out


def test_keyboard_interrupt_exit_130(clean_env, monkeypatch):
    def interrupted(settings, token):
        raise KeyboardInterrupt

    monkeypatch.setitem(cli.COMMANDS, "export", interrupted)

    assert cli.main(["export"]) == cli.EXIT_CANCELLED


def test_interrupt_handler_sets_token(monkeypatch):
    installed = []
    monkeypatch.setattr(cli.signal, "signal", lambda signum, handler: installed.append((signum, handler)))
    token = CancellationToken()

    install_interrupt_handler(token)
    signum, handler = installed[0]
    handler(signal.SIGINT, None)

    assert signum == signal.SIGINT
    assert token.cancelled
    assert installed[-1] == (signal.SIGINT, signal.default_int_handler)
