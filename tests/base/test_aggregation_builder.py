# tests/base/test_aggregation_builder.py

import pytest

from async_model_resources.base.aggregation import (AggregationBuilder,
                                                    split_element_path)


@pytest.mark.parametrize(
    "path, expected",
    [
        (None, []),
        ("", []),
        ("   ", []),
        ("a", ["a"]),
        (" a . b .c ", ["a", "b", "c"]),
    ],
)
def test_split_element_path(path, expected):
    assert split_element_path(path) == expected


def test_empty_pipeline():
    assert AggregationBuilder().build() == []


def test_unwind_each_prefix_of_the_path():
    assert AggregationBuilder().unwind("a.b").build() == [
        {"$unwind": {"path": "$a", "includeArrayIndex": "aIndex"}},
        {"$unwind": {"path": "$a.b", "includeArrayIndex": "bIndex"}},
    ]


def test_unwind_path_ignores_empty_paths():
    builder = AggregationBuilder().unwind_path(None).unwind_path([]).unwind(" ")
    assert builder.build() == []


def test_unwind_twice_accumulates_stages():
    pipeline = AggregationBuilder().unwind("a").unwind("a").build()
    assert len(pipeline) == 2


def test_match_ignores_empty_filters():
    pipeline = AggregationBuilder().match(None).match({}).match({"a.b": 1}).build()
    assert pipeline == [{"$match": {"a.b": 1}}]


def test_sort_limits_before_skipping():
    pipeline = AggregationBuilder().sort({"a.b": -1}, 5, 10).build()
    assert pipeline == [{"$sort": {"a.b": -1}}, {"$limit": 15}, {"$skip": 5}]


def test_sort_without_order_or_offset():
    assert AggregationBuilder().sort(None, 0, 10).build() == [{"$limit": 10}]


def test_full_pipeline_order():
    pipeline = (
        AggregationBuilder()
        .unwind_path(["siblings"])
        .match({"siblings.age": {"$gte": 3}})
        .sort({"siblings.age": 1}, 0, 5)
        .build()
    )
    assert [next(iter(stage)) for stage in pipeline] == ["$unwind", "$match", "$sort", "$limit"]
