import json

import pytest

from crm_migration.errors import SourceReadError, SourceTableNotFound, StagingNotFoundError
from crm_migration.models.migration import MigrationRun, RunMode, TableStatus
from crm_migration.services.staging import IMPORT_LOG_FILE, METADATA_FILE


def test_table_round_trip(staging):
    records = [{"id": 1, "name": "Zürich", "tags": ["a"]}, {"id": 2, "name": None, "tags": []}]

    path = staging.write_table("universities", records)

    assert path.name == "universities.json"
    assert staging.read_table("universities") == records
    assert not path.with_name("universities.json.tmp").exists()


def test_remove_table(staging):
    staging.write_table("leads", [{"id": 1}])

    assert staging.remove_table("leads") is True
    assert not staging.has_table("leads")
    assert staging.remove_table("leads") is False


def test_missing_table(staging):
    staging.create()

    with pytest.raises(SourceTableNotFound):
        staging.read_table("leads")


def test_corrupt_table(staging):
    staging.create()
    staging.table_path("leads").write_text("{not json", encoding="utf-8")

    with pytest.raises(SourceReadError):
        staging.read_table("leads")


def test_table_must_be_array(staging):
    staging.create()
    staging.table_path("leads").write_text('{"id": 1}', encoding="utf-8")

    with pytest.raises(SourceReadError):
        staging.read_table("leads")


def test_ensure_exists(staging):
    with pytest.raises(StagingNotFoundError):
        staging.ensure_exists()

    staging.create()
    staging.ensure_exists()


def test_metadata_parses_export_time(staging):
    staging.write_metadata({"exportedAt": "2024-03-05T14:30:00.000Z", "tablesExported": 2})

    metadata = staging.read_metadata()

    assert metadata["tablesExported"] == 2
    assert metadata["exported_at"].year == 2024
    assert (staging.data_dir / METADATA_FILE).exists()


def test_metadata_absent(staging):
    assert staging.read_metadata() is None


def test_import_log(staging):
    run = MigrationRun(mode=RunMode.IMPORT)
    done = run.add_table("branches", 0)
    done.status = TableStatus.COMPLETED
    done.loaded = 3
    failed = run.add_table("leads", 1)
    failed.mark_failed("boom")
    run.seal()

    staging.write_import_log(run)

    with open(staging.data_dir / IMPORT_LOG_FILE) as f:
        log = json.load(f)
    assert set(log) == {"importedAt", "tablesImported", "tablesFailed", "totalRecords", "duration"}
    assert log["tablesImported"] == 1
    assert log["tablesFailed"] == 1
    assert log["totalRecords"] == 3


def test_run_report(staging):
    run = MigrationRun(mode=RunMode.VERIFY)
    run.seal()

    path = staging.write_run_report(run)

    assert path.parent == staging.reports_dir
    assert path.name.startswith("migration_report_verify_")
    with open(path) as f:
        assert json.load(f)["mode"] == "verify"
