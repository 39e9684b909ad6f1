import os
import subprocess
import tempfile
import unittest
from pathlib import Path

from sqlalchemy import create_engine, inspect, text

from tests.base import *  # noqa: F401,F403

from collate.models.person import Person


class MigrationTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.project_root = Path(__file__).resolve().parents[1]
        cls.tmp_dir = tempfile.TemporaryDirectory()
        cls.test_url = f"sqlite+pysqlite:///{Path(cls.tmp_dir.name) / 'migration_test.db'}"

        cls._run_alembic_upgrade()

        cls.engine = create_engine(cls.test_url)
        cls.inspector = inspect(cls.engine)

    @classmethod
    def tearDownClass(cls):
        if hasattr(cls, "engine"):
            cls.engine.dispose()
        cls.tmp_dir.cleanup()

    @classmethod
    def _run_alembic_upgrade(cls):
        env = os.environ.copy()
        env["DATABASE_URL"] = cls.test_url
        env["PYTHONPATH"] = str(cls.project_root)
        subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=cls.project_root,
            env=env,
            check=True,
            capture_output=True,
            text=True,
        )

    def test_upgrade_head_creates_people_table(self):
        tables = set(self.inspector.get_table_names())
        self.assertTrue({"people", "alembic_version"}.issubset(tables), f"Tables: {tables}")

    def test_people_columns_match_model(self):
        migrated = {column["name"] for column in self.inspector.get_columns("people")}
        self.assertEqual(migrated, set(Person.__table__.columns.keys()))
        indexes = {index["name"] for index in self.inspector.get_indexes("people")}
        self.assertIn("ix_people_surname", indexes)

    def test_alembic_version_is_set(self):
        with self.engine.connect() as conn:
            version = conn.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
        self.assertEqual(version, "0001_people")


if __name__ == "__main__":
    unittest.main()
