import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from tests.base import PeopleDbTestCase, make_person

from collate.core.config import settings
from collate.models.common import ZERO_TIME
from collate.models.person import Person
from collate.schemas.collate import (
    BoolFilter,
    DateRangeFilter,
    FieldKind,
    FieldSpec,
    NotZeroDateFilter,
    QueryState,
    SelectFilter,
    ZeroDateFilter,
)
from collate.services.collate_query import (
    FieldRegistry,
    load_listing,
    parse_order,
    safe_bool_condition,
)

NAME = FieldSpec(field="name", text="Name")
SURNAME = FieldSpec(field="surname", text="Surname")
EMAIL = FieldSpec(db="email", field="mail", text="Email")
ACTIVE = FieldSpec(field="active", kind=FieldKind.BOOL)
LAST_LOGIN = FieldSpec(field="last_login", kind=FieldKind.NOT_ZERO_DATE)
CREATED_AT = FieldSpec(field="created_at", kind=FieldKind.DATES)
STATUS = FieldSpec(field="status", kind=FieldKind.SELECT)

REGISTRY = FieldRegistry(
    search=[NAME, SURNAME],
    sort=[SURNAME, EMAIL],
    filters=[ACTIVE, LAST_LOGIN, CREATED_AT, STATUS],
)


class FieldRegistryTests(unittest.TestCase):
    def test_accepts_configured_columns_and_logical_names(self):
        for name in ["name", "surname", "email", "mail", "active", "last_login", "created_at", "status"]:
            with self.subTest(name=name):
                self.assertTrue(REGISTRY.validate(name))
        self.assertIs(REGISTRY.resolve("mail"), EMAIL)

    def test_rejects_anything_else(self):
        for name in ["", "id", "Name", "name; --", "; DROP TABLE users; --", "country"]:
            with self.subTest(name=name):
                self.assertFalse(REGISTRY.validate(name))
                self.assertIsNone(REGISTRY.resolve(name))


class HelperTests(unittest.TestCase):
    def test_safe_bool_condition_is_exact(self):
        self.assertEqual(safe_bool_condition(" = 1"), "= 1")
        self.assertEqual(safe_bool_condition("is  not null"), "IS NOT NULL")
        for condition in [" = 1; DELETE", "= 1 OR 1=1", "= 2", "LIKE '%'", "IS NULL --"]:
            with self.subTest(condition=condition):
                self.assertIsNone(safe_bool_condition(condition))

    def test_parse_order(self):
        self.assertEqual(parse_order("surname asc, email DESC"), [("surname", "asc"), ("email", "desc")])
        self.assertEqual(parse_order("surname"), [("surname", "asc")])
        self.assertEqual(parse_order(""), [])

    def test_parse_order_drops_clauses_with_extra_tokens(self):
        with self.assertLogs("collate.services.collate_query", level="WARNING"):
            clauses = parse_order("(select 1) asc, email")
        self.assertEqual(clauses, [("email", "asc")])


class LoadListingTests(PeopleDbTestCase):
    def setUp(self):
        super().setUp()
        self.add_people(
            make_person("José", "Álvarez", email="jose@example.com", active=True, status="active",
                        created_at=datetime(2026, 2, 26, 9, 30, tzinfo=timezone.utc),
                        last_login=datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)),
            make_person("Ana", "Novák", email="ana@example.com", active=False, status="blocked",
                        created_at=datetime(2026, 2, 25, 23, 59, 59, tzinfo=timezone.utc)),
            make_person("Zoë", "Brown", email="zoe@example.com", active=True, status="new",
                        created_at=datetime(2026, 2, 27, 0, 0, tzinfo=timezone.utc)),
        )

    def _load(self, **state):
        state.setdefault("limit", 10)
        return load_listing(self.db, Person, REGISTRY, QueryState(**state))

    def test_without_predicates_filtered_equals_total(self):
        result = self._load()
        self.assertEqual(result.total, 3)
        self.assertEqual(result.filtered, 3)
        self.assertEqual(len(result.data), 3)

    def test_search_matches_accented_data(self):
        self.db.query(Person).filter(Person.name != "José").delete()
        self.db.commit()
        self.add_people(make_person("Ana"))
        result = self._load(search="jose")
        self.assertEqual(result.total, 2)
        self.assertEqual(result.filtered, 1)
        self.assertEqual([p.name for p in result.data], ["José"])

    def test_search_with_accented_term(self):
        result = self._load(search="NOVÁK")
        self.assertEqual([p.name for p in result.data], ["Ana"])

    def test_search_falls_back_to_lower_without_normalize(self):
        with patch.object(settings, "COLLATE_SEARCH_NORMALIZE", False):
            self.assertEqual(self._load(search="jose").filtered, 0)
            self.assertEqual([p.name for p in self._load(search="BROWN").data], ["Zoë"])

    def test_injected_filter_field_is_dropped(self):
        result = self._load(filters=[SelectFilter(field="; DROP TABLE users; --", value="x")])
        self.assertEqual(result.filtered, result.total)
        self.assertEqual(self.db.query(Person).count(), 3)

    def test_unsafe_condition_is_skipped(self):
        result = self._load(filters=[BoolFilter(field="active", checked=True, condition=" = 1; DELETE")])
        self.assertEqual(result.filtered, 3)

    def test_safe_conditions(self):
        self.assertEqual(self._load(filters=[BoolFilter(field="active", checked=True, condition=" = 0")]).filtered, 1)
        self.assertEqual(
            self._load(filters=[BoolFilter(field="last_login", checked=True, condition="IS NOT NULL")]).filtered,
            1,
        )

    def test_bool_filter(self):
        self.assertEqual(self._load(filters=[BoolFilter(field="active", checked=True)]).filtered, 2)
        self.assertEqual(self._load(filters=[BoolFilter(field="active", checked=False)]).filtered, 3)

    def test_zero_and_non_zero_dates(self):
        self.assertEqual(self._load(filters=[NotZeroDateFilter(field="last_login", checked=True)]).filtered, 1)
        self.assertEqual(self._load(filters=[ZeroDateFilter(field="last_login", checked=True)]).filtered, 2)

    def test_stored_zero_sentinel_counts_as_unset(self):
        self.add_people(make_person("Ivo", "Kral", last_login=ZERO_TIME))
        self.assertEqual(self._load(filters=[ZeroDateFilter(field="last_login", checked=True)]).filtered, 3)
        result = self._load(filters=[NotZeroDateFilter(field="last_login", checked=True)])
        self.assertEqual([p.name for p in result.data], ["José"])

    def test_configured_condition_applies_when_none_submitted(self):
        registry = FieldRegistry(
            filters=[FieldSpec(field="last_login", kind=FieldKind.BOOL, condition=" IS NOT NULL")],
        )
        query = QueryState(limit=10, filters=[BoolFilter(field="last_login", checked=True)])
        result = load_listing(self.db, Person, registry, query)
        self.assertEqual(result.total, 3)
        self.assertEqual([p.name for p in result.data], ["José"])

        query.filters[0].condition = "IS NULL"
        self.assertEqual(load_listing(self.db, Person, registry, query).filtered, 2)

    def test_unsafe_configured_condition_is_skipped(self):
        registry = FieldRegistry(filters=[FieldSpec(field="active", kind=FieldKind.BOOL, condition="= 1 OR 1=1")])
        query = QueryState(limit=10, filters=[BoolFilter(field="active", checked=True)])
        self.assertEqual(load_listing(self.db, Person, registry, query).filtered, 3)

    def test_like_wildcards_in_search_match_literally(self):
        self.assertEqual(self._load(search="_").filtered, 0)
        self.assertEqual(self._load(search="%").filtered, 0)
        self.add_people(make_person("Ann_Marie", "Lee"), make_person("Bo", "100%"))
        self.assertEqual([p.name for p in self._load(search="_").data], ["Ann_Marie"])
        self.assertEqual([p.name for p in self._load(search="0%").data], ["Bo"])

    def test_date_range_covers_whole_days(self):
        day = datetime(2026, 2, 26)
        result = self._load(filters=[DateRangeFilter(field="created_at", date_from=day, date_to=day)])
        self.assertEqual([p.name for p in result.data], ["José"])
        result = self._load(filters=[DateRangeFilter(field="created_at", date_from=day)])
        self.assertEqual(result.filtered, 2)
        result = self._load(filters=[DateRangeFilter(field="created_at", date_to=day)])
        self.assertEqual(result.filtered, 2)

    def test_select_filter(self):
        self.assertEqual(self._load(filters=[SelectFilter(field="status", value="blocked")]).filtered, 1)
        self.assertEqual(self._load(filters=[SelectFilter(field="status", value="")]).filtered, 3)

    def test_filters_and_search_combine(self):
        result = self._load(search="o", filters=[BoolFilter(field="active", checked=True)])
        self.assertLessEqual(result.filtered, result.total)
        self.assertEqual(sorted(p.name for p in result.data), ["José", "Zoë"])

    def test_order_limit_and_offset(self):
        result = self._load(order="email desc", limit=2)
        self.assertEqual([p.name for p in result.data], ["Zoë", "José"])
        self.assertEqual(result.filtered, 3)
        result = self._load(order="mail asc", limit=1, offset=1)
        self.assertEqual([p.email for p in result.data], ["jose@example.com"])

    def test_invalid_order_clauses_are_ignored(self):
        result = self._load(order="id desc, surname sideways, (select 1) asc, surname asc")
        self.assertEqual([p.surname for p in result.data], ["Brown", "Novák", "Álvarez"])


if __name__ == "__main__":
    unittest.main()
