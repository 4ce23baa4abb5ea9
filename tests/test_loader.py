from unittest.mock import patch

import pytest

from conftest import FakeTarget, make_rows
from crm_migration.connections import MySQLTarget
from crm_migration.cancellation import CancellationToken
from crm_migration.errors import LoadError, MigrationCancelled, StoreConnectionError
from crm_migration.loaders import LoadResult, MySQLLoader
from crm_migration.models.record import InsertOutcome, RecordOutcome


class TestMySQLLoader:

    def test_loads_all_records(self, loader, fake_target):
        result = loader.load("branches", make_rows(7))

        assert result.loaded == 7
        assert result.skipped_duplicates == 0
        assert result.failed == 0
        assert len(fake_target.rows("branches")) == 7

    def test_second_load_is_idempotent(self, loader, fake_target):
        loader.load("branches", make_rows(4))
        snapshot = fake_target.rows("branches")

        result = loader.load("branches", make_rows(4))

        assert result.loaded == 0
        assert result.skipped_duplicates == 4
        assert result.failed == 0
        assert fake_target.rows("branches") == snapshot

    def test_one_transaction_with_fk_checks_suspended(self, loader, fake_target):
        loader.load("branches", make_rows(7))

        assert fake_target.events == [
            ("begin", None),
            ("fk", 0),
            ("fk", 1),
            ("commit", None),
        ]
        assert fake_target.fk_checks is True

    def test_row_failure_does_not_abort(self, loader, fake_target):
        fake_target.reject_ids = {2, 5}

        result = loader.load("branches", make_rows(6))

        assert result.loaded == 4
        assert result.failed == 2
        assert [e["record_id"] for e in result.errors] == ["2", "5"]
        assert result.errors[0]["error_code"] == 1406
        assert sorted(r["id"] for r in fake_target.rows("branches")) == [1, 3, 4, 6]

    def test_each_record_uses_its_own_columns(self, loader, fake_target):
        records = [{"id": 1, "name": "a"}, {"id": 2, "name": "b", "city": "Lahore"}]

        result = loader.load("branches", records)

        assert result.loaded == 2
        assert fake_target.rows("branches")[1] == {"id": 2, "name": "b", "city": "Lahore"}

    def test_empty_record_is_a_failure(self, loader):
        result = loader.load("branches", [{}])

        assert result.failed == 1
        assert result.loaded == 0

    def test_begin_failure_raises_load_error(self, loader, fake_target):
        fake_target.fail_begin = True

        with pytest.raises(LoadError) as exc_info:
            loader.load("branches", make_rows(2))

        assert exc_info.value.table == "branches"
        assert fake_target.fk_checks is True

    def test_commit_failure_rolls_back(self, loader, fake_target):
        fake_target.fail_commit = {"branches"}

        with pytest.raises(LoadError):
            loader.load("branches", make_rows(2))

        assert ("rollback", None) in fake_target.events
        assert fake_target.rows("branches") == []
        assert fake_target.fk_checks is True

    def test_lost_connection_propagates(self, loader, fake_target):
        fake_target.lose_connection_on = {3}

        with pytest.raises(StoreConnectionError):
            loader.load("branches", make_rows(5))

        assert fake_target.rows("branches") == []

    def test_cancel_between_batches_rolls_back(self, fake_target):
        token = CancellationToken()
        loader = MySQLLoader(fake_target, batch_size=2)
        records = make_rows(6)

        original = loader.load_batch

        def load_then_cancel(table, batch, result):
            original(table, batch, result)
            token.cancel()

        loader.load_batch = load_then_cancel

        with pytest.raises(MigrationCancelled):
            loader.load("branches", records, cancel_token=token)

        assert fake_target.rows("branches") == []
        assert fake_target.events[-2:] == [("rollback", None), ("fk", 1)]

    def test_batch_size_override(self, loader, fake_target, caplog):
        caplog.set_level("INFO", logger="crm_migration.loaders.mysql_loader")

        loader.load("branches", make_rows(5), batch_size=5)

        progress = [r.message for r in caplog.records if "Imported" in r.message]
        assert progress == ["   Imported 5/5 records..."]

    def test_rejects_bad_batch_size(self, fake_target):
        with pytest.raises(ValueError):
            MySQLLoader(fake_target, batch_size=0)

    @pytest.mark.parametrize("batch_size", [0, -1])
    def test_rejects_bad_batch_size_override(self, loader, fake_target, batch_size):
        with pytest.raises(ValueError):
            loader.load("branches", make_rows(3), batch_size=batch_size)

        assert fake_target.events == []

    def test_percent_in_column_name(self, loader, fake_target):
        records = [{"id": 1, "bonus_%": 5}, {"id": 2}]

        result = loader.load("payroll", records)

        assert result.loaded == 2
        assert result.failed == 0
        assert fake_target.rows("payroll")[0] == {"id": 1, "bonus_%": 5}

    def test_percent_in_column_name_with_pymysql(self):
        def interpolate(query, args=None):
            if args is not None:
                query % tuple(args)
            return 1

        with patch("crm_migration.connections.pymysql.connect") as connect:
            cursor = connect.return_value.cursor.return_value.__enter__.return_value
            cursor.execute.side_effect = interpolate
            loader = MySQLLoader(MySQLTarget("db").connect())

            result = loader.load("payroll", [{"id": 1, "bonus_%": 5}, {"id": 2, "rate%s": 1}])

        assert result.loaded == 2
        statements = [c.args[0] for c in cursor.execute.call_args_list]
        assert statements[1] == "INSERT INTO `payroll` (`id`, `bonus_%%`) VALUES (%s, %s)"
        assert statements[2] == "INSERT INTO `payroll` (`id`, `rate%%s`) VALUES (%s, %s)"

    def test_driver_formatting_error_is_a_row_failure(self):
        class FormattingTarget(FakeTarget):
            def execute(self, sql, params=None):
                if params and params[0] == 2:
                    raise TypeError("not all arguments converted during string formatting")
                return super().execute(sql, params)

        target = FormattingTarget()
        result = MySQLLoader(target, batch_size=3).load("branches", make_rows(3))

        assert result.loaded == 2
        assert result.failed == 1
        assert result.errors[0]["record_id"] == "2"
        assert sorted(r["id"] for r in target.rows("branches")) == [1, 3]


class TestLoadResult:

    def test_counts_outcomes(self):
        result = LoadResult(table="leads")
        result.add(RecordOutcome(InsertOutcome.LOADED))
        result.add(RecordOutcome(InsertOutcome.DUPLICATE, error="dup", error_code=1062))
        result.add(RecordOutcome(InsertOutcome.FAILED, error="bad", error_code=1406), {"id": 9})

        assert result.total_attempted == 3
        assert result.errors == [{"record_id": "9", "error": "bad", "error_code": 1406}]
        assert result.to_dict()["failed"] == 1
