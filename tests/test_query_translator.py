"""Tests for compiling query specifications (no store involved)."""

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError

from app.cities.predicates import MATCH_ALL, And, Equals, MatchMode, Or, Pattern, to_mongo
from app.cities.query import ASCENDING, DESCENDING, QueryTranslator
from app.cities.schemas import Pagination, QuerySpec, SearchSpec, SortSpec
from app.core.exceptions import BadRequestException


class TestFilter:
    def test_empty_filter_matches_everything(self, translator):
        assert translator.compile_filter({}) == MATCH_ALL

    def test_or_within_field_and_across_fields(self, translator):
        predicate = translator.compile_filter({"name": ["A", "B"], "population": ["100"]})
        assert predicate == And((
            Or((Pattern("name", "A"), Pattern("name", "B"))),
            Equals("population", 100),
        ))
        assert to_mongo(predicate) == {
            "$and": [
                {"$or": [
                    {"name": {"$regex": "A", "$options": "i"}},
                    {"name": {"$regex": "B", "$options": "i"}},
                ]},
                {"population": 100},
            ]
        }

    def test_numeric_values_on_numeric_field(self, translator):
        assert translator.compile_filter({"area": ["783.8"]}) == Equals("area", 783.8)
        assert translator.compile_filter({"population": [42]}) == Equals("population", 42)

    def test_non_numeric_value_on_numeric_field_matches_string_form(self, translator):
        assert translator.compile_filter({"population": ["1e"]}) == Pattern(
            "population", "1e", MatchMode.CONTAINS, as_string=True
        )

    def test_digit_separators_are_not_numbers(self, translator):
        assert translator.compile_filter({"population": ["1_000"]}) == Pattern(
            "population", "1_000", MatchMode.CONTAINS, as_string=True
        )
        assert translator.compile_filter({"area": ["56_8"]}) == Pattern(
            "area", "56_8", MatchMode.CONTAINS, as_string=True
        )

    def test_numeric_value_on_string_field_is_substring(self, translator):
        assert translator.compile_filter({"name": ["42"]}) == Pattern("name", "42")

    def test_empty_value_lists_are_skipped(self, translator):
        assert translator.compile_filter({"name": [], "population": ["7"]}) == Equals("population", 7)

    def test_unknown_field(self, translator):
        with pytest.raises(BadRequestException) as exc:
            translator.compile_filter({"country": ["US"]})
        assert exc.value.status_code == 400
        assert "country" in exc.value.detail

    def test_blank_value(self, translator):
        with pytest.raises(BadRequestException):
            translator.compile_filter({"name": ["  "]})


class TestSearch:
    def test_no_search(self, translator):
        assert translator.compile_search(None) == MATCH_ALL
        assert translator.compile_search(SearchSpec(term="   ")) == MATCH_ALL

    def test_defaults_to_name(self, translator):
        assert translator.compile_search(SearchSpec(term="York")) == Pattern("name", "York")

    @pytest.mark.parametrize(
        "starts, ends, mode",
        [
            (True, True, MatchMode.EXACT),
            (True, False, MatchMode.PREFIX),
            (False, True, MatchMode.SUFFIX),
            (False, False, MatchMode.CONTAINS),
        ],
    )
    def test_mode_selection(self, translator, starts, ends, mode):
        search = SearchSpec(term="York", startsWith=starts, endsWith=ends)
        assert translator.compile_search(search) == Pattern("name", "York", mode)

    def test_fields_are_ored_and_numeric_fields_match_as_string(self, translator):
        search = SearchSpec(term="12", fields=["name", "area"], startsWith=True)
        assert translator.compile_search(search) == Or((
            Pattern("name", "12", MatchMode.PREFIX),
            Pattern("area", "12", MatchMode.PREFIX, as_string=True),
        ))

    def test_unknown_search_field(self, translator):
        with pytest.raises(BadRequestException) as exc:
            translator.compile_search(SearchSpec(term="x", fields=["mayor"]))
        assert "mayor" in exc.value.detail


class TestSort:
    def test_default_is_name_ascending(self, translator):
        assert translator.compile_sort(None) == [("name", ASCENDING)]
        assert translator.compile_sort(SortSpec()) == [("name", ASCENDING)]

    def test_single_field(self, translator):
        assert translator.compile_sort(SortSpec(sortBy=["area"], sortDesc=[True])) == [("area", DESCENDING)]

    def test_two_fields_second_is_primary(self, translator):
        sort = SortSpec(sortBy=["name", "area"], sortDesc=[True, False])
        assert translator.compile_sort(sort) == [("area", ASCENDING), ("name", DESCENDING)]

    def test_three_fields_are_reversed(self, translator):
        sort = SortSpec(sortBy=["name", "area", "population"], sortDesc=[False, True])
        assert translator.compile_sort(sort) == [
            ("population", ASCENDING),
            ("area", DESCENDING),
            ("name", ASCENDING),
        ]

    def test_missing_direction_is_ascending(self, translator):
        assert translator.compile_sort(SortSpec(sortBy=["area"])) == [("area", ASCENDING)]

    def test_more_directions_than_fields(self, translator):
        with pytest.raises(BadRequestException):
            translator.compile_sort(SortSpec(sortBy=["area"], sortDesc=[True, False]))

    def test_duplicate_field(self, translator):
        with pytest.raises(BadRequestException):
            translator.compile_sort(SortSpec(sortBy=["area", "area"]))

    def test_unknown_field(self, translator):
        with pytest.raises(BadRequestException) as exc:
            translator.compile_sort(SortSpec(sortBy=["founded"]))
        assert "founded" in exc.value.detail


class TestProjection:
    def test_inclusion_wins_over_exclusion(self, translator):
        projection = translator.compile_projection({"id": 1, "name": 0, "area": 1, "population": 0})
        assert projection == {"id": 1, "area": 1, "_id": 0}

    def test_all_exclusions_pass_through(self, translator):
        assert translator.compile_projection({"area": 0, "population": 0}) == {
            "area": 0,
            "population": 0,
            "_id": 0,
        }

    def test_booleans_are_normalized(self, translator):
        assert translator.compile_projection({"name": True, "area": False}) == {"name": 1, "_id": 0}

    def test_internal_id_hidden_by_default(self, translator):
        assert translator.compile_projection(None) == {"_id": 0}

    def test_internal_id_can_be_exposed(self):
        translator = QueryTranslator(include_internal_id=True)
        assert translator.compile_projection({"name": 1}) == {"name": 1}
        assert translator.compile_projection(None) == {}

    def test_invalid_value(self, translator):
        with pytest.raises(BadRequestException):
            translator.compile_projection({"name": 2})

    @pytest.mark.parametrize("flag", ["yes", "true", "1", 1.0])
    def test_non_boolean_flags_are_rejected(self, flag):
        with pytest.raises(ValidationError):
            QuerySpec(projection={"name": flag})

    def test_unknown_field(self, translator):
        with pytest.raises(BadRequestException):
            translator.compile_projection({"mayor": 1})

    @given(st.dictionaries(st.sampled_from(["id", "name", "population", "area"]), st.sampled_from([0, 1])))
    def test_never_mixes_inclusion_and_exclusion(self, raw):
        projection = QueryTranslator().compile_projection(raw)
        values = {v for k, v in projection.items() if k != "_id"}
        assert values != {0, 1}
        if 1 in raw.values():
            assert set(projection) - {"_id"} == {k for k, v in raw.items() if v == 1}


class TestPagination:
    def test_defaults(self, translator):
        assert translator.paginate(None) == (1, 0, 10)

    def test_skip(self, translator):
        assert translator.paginate(Pagination(page=3, limit=20)) == (3, 40, 20)

    def test_items_per_page_alias(self, translator):
        assert translator.paginate(Pagination(page=2, itemsPerPage=5)) == (2, 5, 5)

    def test_non_positive_values_are_clamped(self, translator):
        pagination = Pagination(page=0, limit=-4)
        assert (pagination.page, pagination.limit) == (1, 1)
        assert translator.paginate(pagination) == (1, 0, 1)

    def test_limit_is_capped(self):
        translator = QueryTranslator(max_page_size=50)
        assert translator.paginate(Pagination(limit=500)) == (1, 0, 50)

    def test_configured_default_page_size(self):
        translator = QueryTranslator(default_page_size=25)
        assert translator.paginate(Pagination(page=2)) == (2, 25, 25)

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "1e400"])
    def test_non_finite_values_are_rejected(self, value):
        with pytest.raises(ValidationError):
            Pagination(page=value)
        with pytest.raises(ValidationError):
            Pagination(limit=value)

    def test_huge_page_keeps_skip_in_int64(self, translator):
        page, skip, limit = translator.paginate(Pagination(page=10**30, limit=7))
        assert skip <= 2**63 - 1
        assert skip == (page - 1) * limit
        assert translator.paginate(Pagination(page=1e19))[1] <= 2**63 - 1


class TestCompile:
    def test_filter_search_and_id_are_anded(self, translator):
        spec = QuerySpec(
            filter={"population": "100"},
            search=SearchSpec(term="bo", startsWith=True),
            id=4,
            pagination=Pagination(),
        )
        compiled = translator.compile(spec)
        assert compiled.predicate == And((
            Equals("population", 100),
            Pattern("name", "bo", MatchMode.PREFIX),
            Equals("id", 4),
        ))
        assert compiled.sort == [("name", ASCENDING)]
        assert compiled.projection == {"_id": 0}
        assert (compiled.skip, compiled.limit) == (0, 10)

    def test_probe_mode_detection(self):
        assert QuerySpec(search=SearchSpec(term="York")).is_probe
        assert not QuerySpec(search=SearchSpec(term="York"), pagination=Pagination()).is_probe
        assert not QuerySpec().is_probe

    def test_probe_plan(self, translator):
        spec = QuerySpec(
            filter={"area": ["12.5"]},
            search=SearchSpec(term="York", fields=["name"], startsWith=True, endsWith=True),
        )
        plan = translator.compile_probe(spec)
        assert plan.term == "York"
        assert plan.fields == ["name"]
        # The request flags do not matter in probe mode
        assert plan.starts_with == And((Equals("area", 12.5), Pattern("name", "York", MatchMode.PREFIX)))
        assert plan.ends_with == And((Equals("area", 12.5), Pattern("name", "York", MatchMode.SUFFIX)))

    def test_probe_requires_term(self, translator):
        with pytest.raises(BadRequestException):
            translator.compile_probe(QuerySpec())
