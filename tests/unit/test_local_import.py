"""Unit tests for the local wipe and import stage."""

from unittest.mock import MagicMock, patch

import pytest

from dbsync.core.config import ConnectionProfile, HookSetConfig, MigrationsConfig
from dbsync.core.exceptions import ExecutionError, FileSystemError, LocalSubprocessError
from dbsync.core.executor import CommandResult
from dbsync.drivers import MySQLDriver, PostgreSQLDriver
from dbsync.services.hooks import HookRunner
from dbsync.services.local_import import (
    LocalImportStage,
    PG_WIPE_SQL,
    mysql_drop_statements,
    parse_pv_line,
    quote_mysql_identifier,
)
from dbsync.services.plan import SyncOptions, SyncPlan
from dbsync.services.progress import ProgressUnit


@pytest.fixture
def dump(tmp_path):
    path = tmp_path / "local-dbsync-test.sql"
    path.write_text("CREATE TABLE users (id int);\n")
    return path


@pytest.fixture
def stage_factory(make_ctx, settings_factory, executor, version_probe):
    def factory(*, driver="mysql", options=SyncOptions(), **kwargs):
        overrides = kwargs.pop("settings", {})
        ctx = make_ctx(settings_factory(driver=driver, **overrides))
        plan = SyncPlan.resolve(ctx.config, options)
        engine = (
            PostgreSQLDriver() if driver == "pgsql"
            else MySQLDriver(version_probe=version_probe)
        )
        return LocalImportStage(ctx, executor, plan, engine, **kwargs)

    return factory


class TestHelpers:
    def test_quote_identifier(self):
        assert quote_mysql_identifier("users") == "`users`"
        assert quote_mysql_identifier("we`ird") == "`we``ird`"

    def test_drop_statements(self):
        listing = "users\tBASE TABLE\norders\tBASE TABLE\nactive_users\tVIEW\n"

        assert mysql_drop_statements(listing) == (
            "SET FOREIGN_KEY_CHECKS=0; "
            "DROP TABLE IF EXISTS `users`; "
            "DROP TABLE IF EXISTS `orders`; "
            "DROP VIEW IF EXISTS `active_users`; "
            "SET FOREIGN_KEY_CHECKS=1;"
        )

    def test_drop_statements_empty(self):
        assert mysql_drop_statements("") is None
        assert mysql_drop_statements("\n\n") is None

    @pytest.mark.parametrize("line,expected", [
        ("42", 42),
        (" 100\n", 100),
        ("ERROR 1064 (42000) at line 3", None),
        ("", None),
    ])
    def test_parse_pv_line(self, line, expected):
        assert parse_pv_line(line) == expected


class TestWipe:
    """Tests for emptying the local database."""

    def test_postgresql(self, stage_factory, executor):
        stage_factory(driver="pgsql").wipe()

        executor.run.assert_called_once()
        command = executor.run.call_args.args[0]
        assert command[0] == "psql"
        assert command[-1] == PG_WIPE_SQL
        assert executor.run.call_args.kwargs["description"] == "Dropping local database..."

    def test_mysql_drops_every_table(self, stage_factory, executor):
        executor.run.side_effect = [
            CommandResult([], 0, "users\tBASE TABLE\nv_users\tVIEW\n", ""),
            CommandResult([], 0, "", ""),
        ]

        stage_factory().wipe()

        assert executor.run.call_count == 2
        listing_command = executor.run.call_args_list[0].args[0]
        assert "SHOW FULL TABLES" in listing_command
        assert listing_command[-1] == "app_local"
        drop_sql = executor.run.call_args_list[1].args[0][-2]
        assert drop_sql.startswith("SET FOREIGN_KEY_CHECKS=0;")
        assert "DROP TABLE IF EXISTS `users`;" in drop_sql
        assert "DROP VIEW IF EXISTS `v_users`;" in drop_sql

    def test_mysql_empty_database(self, stage_factory, executor):
        stage_factory().wipe()
        executor.run.assert_called_once()

    def test_password_is_secret(self, stage_factory, executor):
        stage_factory(driver="pgsql").wipe()
        assert "localpw" in executor.run.call_args.kwargs["secrets"]

    def test_failure_propagates(self, stage_factory, executor):
        executor.run.side_effect = ExecutionError("Command failed: psql", return_code=2)

        with pytest.raises(ExecutionError):
            stage_factory(driver="pgsql").wipe()


class TestImportDump:
    """Tests for loading the dump."""

    @patch("dbsync.services.local_import.shutil.which", return_value=None)
    def test_without_pv(self, mock_which, stage_factory, executor, dump):
        stage_factory().import_dump(dump)

        argv = executor.stream.call_args.args[0]
        assert argv[:2] == ["sh", "-c"]
        assert argv[2].endswith(f"app_local < {dump}")
        assert executor.stream.call_args.kwargs["description"] == "Importing..."

    @patch("dbsync.services.local_import.shutil.which", return_value="/usr/bin/pv")
    def test_with_pv_reports_progress(self, mock_which, stage_factory, executor, dump):
        def stream(command, *, on_line, **kwargs):
            kept = [line for line in ("12", "57", "57", "100") if not on_line(line)]
            return CommandResult(command, 0, "\n".join(kept), "")

        executor.stream.side_effect = stream
        events = []

        stage_factory(progress=events.append).import_dump(dump)

        argv = executor.stream.call_args.args[0]
        assert argv[2].startswith(f"/usr/bin/pv -n {dump} | mysql")
        assert [e.completed for e in events] == [12, 57, 100]
        assert all(e.unit == ProgressUnit.PERCENT for e in events)

    @patch("dbsync.services.local_import.shutil.which", return_value="/usr/bin/pv")
    def test_error_lines_are_kept(self, mock_which, stage_factory, executor, dump):
        consumed = []

        def stream(command, *, on_line, **kwargs):
            consumed.extend(on_line(line) for line in ("10", "ERROR 1064 at line 3"))
            return CommandResult(command, 1, "ERROR 1064 at line 3", "")

        executor.stream.side_effect = stream

        with pytest.raises(LocalSubprocessError):
            stage_factory().import_dump(dump)
        assert consumed == [True, False]

    @patch("dbsync.services.local_import.shutil.which", return_value=None)
    def test_failure_keeps_dump(self, mock_which, stage_factory, executor, dump):
        executor.stream.side_effect = lambda command, **kwargs: CommandResult(
            command, 1, "ERROR 1045: Access denied for user 'app' (using password: YES)", ""
        )

        with pytest.raises(LocalSubprocessError) as exc:
            stage_factory().import_dump(dump)

        assert str(exc.value) == "There was an error during the import."
        assert exc.value.exit_code == 5
        assert exc.value.return_code == 1
        assert "localpw" not in exc.value.command
        assert "ERROR 1045" in exc.value.stderr
        assert f"--dump-file {dump}" in exc.value.hint
        assert dump.exists()

    @patch("dbsync.services.local_import.shutil.which", return_value=None)
    def test_postgresql_url_encoded_password_masked(
        self, mock_which, stage_factory, executor, dump
    ):
        executor.stream.side_effect = lambda command, **kwargs: CommandResult(command, 1, "", "")
        stage = stage_factory(
            driver="pgsql",
            settings={"connections": {"default": _pg_profile("p@ss:word")}},
        )

        with pytest.raises(LocalSubprocessError) as exc:
            stage.import_dump(dump)

        assert "p%40ss%3Aword" not in exc.value.command
        assert "****" in exc.value.command


def _pg_profile(password):
    return ConnectionProfile(
        driver="pgsql",
        host="127.0.0.1",
        port=5432,
        username="app",
        password=password,
        database="app_local",
    )


class TestDeleteDump:
    def test_deletes(self, stage_factory, console_mock, dump):
        stage_factory().delete_dump(dump)

        assert not dump.exists()
        console_mock.info.assert_called_with("Local dump deleted.")

    def test_already_gone(self, stage_factory, tmp_path):
        stage_factory().delete_dump(tmp_path / "missing.sql")

    def test_unlink_error(self, stage_factory, tmp_path):
        directory = tmp_path / "dump.sql"
        directory.mkdir()

        with pytest.raises(FileSystemError):
            stage_factory().delete_dump(directory)


@patch("dbsync.services.local_import.shutil.which", return_value=None)
class TestRun:
    """Tests for the ordering of the post-import steps."""

    def test_order(self, mock_which, stage_factory, executor, console_mock, dump):
        order = []
        executor.run.side_effect = lambda command, **kwargs: (
            order.append(kwargs.get("description") or "drop"),
            CommandResult(command, 0, "", ""),
        )[1]
        executor.stream.side_effect = lambda command, **kwargs: (
            order.append("import"),
            CommandResult(command, 0, "", ""),
        )[1]
        hooks = HookRunner(console_mock, resolver=lambda identifier: lambda: order.append("hook"))

        stage_factory(
            options=SyncOptions(delete_local_dump=True),
            hooks=hooks,
            settings={"post_scripts": HookSetConfig(enabled=True, scripts=("reindex",))},
        ).run(dump)

        assert order == [
            "Dropping local database...",
            "import",
            "Running migrations...",
            "hook",
        ]
        assert not dump.exists()

    def test_migration_environment(self, mock_which, stage_factory, executor, dump):
        stage_factory().run(dump)

        migrate = executor.run.call_args_list[-1]
        assert migrate.args[0] == ["alembic", "upgrade", "head"]
        assert migrate.kwargs["env"] == {"DBSYNC_CONNECTION": "default"}

    def test_no_migrations(self, mock_which, stage_factory, executor, dump):
        stage_factory(options=SyncOptions(no_migrations=True)).run(dump)

        commands = [call.args[0] for call in executor.run.call_args_list]
        assert ["alembic", "upgrade", "head"] not in commands

    def test_dump_kept_by_default(self, mock_which, stage_factory, dump):
        stage_factory().run(dump)
        assert dump.exists()

    def test_missing_migration_command_warns(
        self, mock_which, stage_factory, console_mock, dump
    ):
        stage_factory(settings={"migrations": MigrationsConfig()}).run(dump)

        console_mock.warn.assert_any_call(
            "No migration command configured, skipping migrations."
        )

    def test_failed_import_skips_everything_after(
        self, mock_which, stage_factory, executor, console_mock, dump
    ):
        executor.stream.side_effect = lambda command, **kwargs: CommandResult(command, 1, "", "")
        hook = MagicMock()
        hooks = HookRunner(console_mock, resolver=lambda identifier: hook)

        with pytest.raises(LocalSubprocessError):
            stage_factory(
                options=SyncOptions(delete_local_dump=True),
                hooks=hooks,
                settings={"post_scripts": HookSetConfig(enabled=True, scripts=("reindex",))},
            ).run(dump)

        assert dump.exists()
        hook.assert_not_called()
        commands = [call.args[0] for call in executor.run.call_args_list]
        assert ["alembic", "upgrade", "head"] not in commands
