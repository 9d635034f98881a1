import tempfile
import unittest
from pathlib import Path
from unittest import mock

from core import paths as core_paths


class _FixedResolver:
    def __init__(self, directory):
        self.directory = directory

    def next_directory(self):
        return self.directory


class CorePathsTests(unittest.TestCase):
    def test_resolve_backup_directory_without_resolver_uses_tempdir(self) -> None:
        self.assertEqual(core_paths.resolve_backup_directory(None), Path(tempfile.gettempdir()))

    def test_resolve_backup_directory_ignores_missing_directory(self) -> None:
        resolver = _FixedResolver(Path("/nonexistent/dbkeeper/backups"))
        self.assertEqual(core_paths.resolve_backup_directory(resolver), Path(tempfile.gettempdir()))

    def test_resolve_backup_directory_keeps_existing_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            resolver = _FixedResolver(Path(tmp))
            self.assertEqual(core_paths.resolve_backup_directory(resolver), Path(tmp))

    def test_most_free_resolver_prefers_free_space(self) -> None:
        with tempfile.TemporaryDirectory() as small, tempfile.TemporaryDirectory() as large:
            free = {Path(small).resolve(): 10, Path(large).resolve(): 1000}

            def fake_usage(path):
                return mock.Mock(free=free[Path(path)])

            resolver = core_paths.MostFreeDirectoryResolver([small, large])
            with mock.patch.object(core_paths.shutil, "disk_usage", side_effect=fake_usage):
                self.assertEqual(resolver.next_directory(), Path(large).resolve())

    def test_most_free_resolver_without_directories(self) -> None:
        self.assertIsNone(core_paths.MostFreeDirectoryResolver([]).next_directory())

    def test_resolve_working_dir_honours_env(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "home"
            with mock.patch.dict(core_paths.os.environ, {"DBKEEPER_HOME": str(target)}):
                self.assertEqual(core_paths.resolve_working_dir(), target.resolve())
            self.assertTrue(target.is_dir())


if __name__ == "__main__":
    unittest.main()
