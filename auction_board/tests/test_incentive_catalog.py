import math

from auction_board.services.incentive_catalog import (
    Incentive,
    coerce_flag,
    normalize,
    normalize_incentive,
    positional_incentive_id,
)


def test_normalize_coerces_fields_and_keeps_ids():
    incentives = normalize(
        [
            {
                "id": "gym",
                "name": "New gym floor",
                "target": "2500",
                "active": 1,
                "displayNow": "true",
                "displayUntilMet": "off",
            }
        ]
    )

    assert incentives == [
        Incentive(
            id="gym",
            name="New gym floor",
            target=2500.0,
            active=True,
            display_now=True,
            display_until_met=False,
        )
    ]


def test_bad_targets_become_zero():
    incentives = normalize(
        [
            {"id": "a", "target": -5},
            {"id": "b", "target": "lots"},
            {"id": "c", "target": math.inf},
            {"id": "d", "target": None},
            {"id": "e", "target": float("nan")},
        ]
    )

    assert [item.target for item in incentives] == [0.0, 0.0, 0.0, 0.0, 0.0]


def test_false_strings_are_false():
    values = ["false", "0", "no", "off", "", " OFF ", "yes", "Y", "enabled", "x"]
    raw = [{"id": str(i), "active": value} for i, value in enumerate(values)]

    incentives = normalize(raw)

    assert [item.active for item in incentives] == [
        False, False, False, False, False, False, True, True, True, True
    ]
    assert coerce_flag("enabled") is True
    assert coerce_flag(0) is False


def test_malformed_entries_keep_their_position():
    incentives = normalize(
        [None, "garbage", {"name": "Real one", "target": 10}],
        positional_incentive_id,
    )

    assert [item.id for item in incentives] == ["incentive-0", "incentive-1", "incentive-2"]
    assert incentives[0] == Incentive(id="incentive-0")
    assert incentives[2].name == "Real one"
    assert incentives[2].target == 10.0


def test_non_list_input_yields_empty_list():
    assert normalize(None) == []
    assert normalize({"id": "a"}) == []
    assert normalize("incentives") == []


def test_names_are_truncated_and_non_strings_dropped():
    incentives = normalize([{"id": "a", "name": "x" * 250}, {"id": "b", "name": 42}])

    assert len(incentives[0].name) == 200
    assert incentives[1].name == ""
    assert incentives[1].display_name == "Incentive"
    assert incentives[1].has_name is False


def test_duplicate_ids_are_replaced():
    incentives = normalize(
        [{"id": "dup", "name": "First"}, {"id": "dup", "name": "Second"}],
        positional_incentive_id,
    )

    assert incentives[0].id == "dup"
    assert incentives[1].id == "incentive-1"


def test_generated_ids_are_unique_uuids():
    incentives = normalize([{"name": "A"}, {"name": "B"}])

    assert incentives[0].id != incentives[1].id
    assert len(incentives[0].id) == 36


def test_positional_ids_are_stable_across_calls():
    raw = [{"name": "A", "target": 5}, {"name": "B", "target": 7}]

    first = normalize(raw, positional_incentive_id)
    second = normalize(raw, positional_incentive_id)

    assert [item.id for item in first] == [item.id for item in second]


def test_payload_round_trip_uses_camel_case():
    incentive = normalize_incentive(
        {"id": "x", "name": "Band", "target": 100, "displayUntilMet": True}
    )

    payload = incentive.to_payload()

    assert payload == {
        "id": "x",
        "name": "Band",
        "target": 100.0,
        "active": False,
        "displayNow": False,
        "displayUntilMet": True,
    }
    assert normalize_incentive(incentive) == incentive
