import unittest
from unittest.mock import patch

from sqlalchemy import text

from tests.base import PeopleDbTestCase

from collate.core.config import settings
from collate.services.search_normalize import ensure_normalize_registered, normalize_for_search


class NormalizeForSearchTests(unittest.TestCase):
    def test_folds_accents_and_case(self):
        self.assertEqual(normalize_for_search("Č"), "c")
        self.assertEqual(normalize_for_search("č"), "c")
        self.assertEqual(normalize_for_search("José Núñez"), "jose nunez")
        self.assertEqual(normalize_for_search("Dvořák Šimková"), "dvorak simkova")
        self.assertEqual(normalize_for_search("Łódź"), "lodz")

    def test_ligatures_expand(self):
        self.assertEqual(normalize_for_search("Æsir"), "aesir")
        self.assertEqual(normalize_for_search("cœur"), "coeur")

    def test_is_idempotent(self):
        for value in ["Ťažký Ďateľ", "Ærø", "plain", "ŻÓŁW", ""]:
            once = normalize_for_search(value)
            self.assertEqual(normalize_for_search(once), once)

    def test_none_passes_through(self):
        self.assertIsNone(normalize_for_search(None))


class NormalizeRegistrationTests(PeopleDbTestCase):
    def test_registers_sql_function_on_sqlite(self):
        self.assertTrue(ensure_normalize_registered(self.db))
        value = self.db.execute(text("SELECT normalize('Ťažký')")).scalar()
        self.assertEqual(value, "tazky")

    def test_repeated_registration_is_noop(self):
        self.assertTrue(ensure_normalize_registered(self.db))
        self.assertTrue(ensure_normalize_registered(self.db))
        self.assertIsNone(self.db.execute(text("SELECT normalize(NULL)")).scalar())

    def test_disabled_by_settings(self):
        with patch.object(settings, "COLLATE_SEARCH_NORMALIZE", False):
            self.assertFalse(ensure_normalize_registered(self.db))


if __name__ == "__main__":
    unittest.main()
