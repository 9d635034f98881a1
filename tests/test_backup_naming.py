import os
from datetime import datetime

from backup.naming import backup_prefix, create_backup_filename, find_backup_outputs


def test_create_backup_filename_uses_compact_timestamp():
    name = create_backup_filename("mydb-1005", ".sql", datetime(2024, 1, 2, 3, 4, 5))
    assert name == "mydb-1005-20240102030405.sql"


def test_backup_prefix_joins_name_and_schema_version():
    assert backup_prefix("media", "1362") == "media-1362"


def test_find_backup_outputs_newest_first(tmp_path):
    prefix = "media-1362-20240102030405.sql"
    older = tmp_path / f"{prefix}.gz"
    newer = tmp_path / f"{prefix}.bz2"
    older.write_text("a", encoding="utf-8")
    newer.write_text("b", encoding="utf-8")
    (tmp_path / "unrelated.sql").write_text("c", encoding="utf-8")
    (tmp_path / f"{prefix}.d").mkdir()
    os.utime(older, (1_000_000, 1_000_000))
    os.utime(newer, (2_000_000, 2_000_000))

    assert find_backup_outputs(tmp_path, prefix) == [newer, older]


def test_find_backup_outputs_missing_directory(tmp_path):
    assert find_backup_outputs(tmp_path / "absent", "x") == []
