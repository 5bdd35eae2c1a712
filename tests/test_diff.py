"""Unit tests for id-keyed collection diffing and round renumbering."""

from __future__ import annotations

from src.estateflow.customers.diff import (
    apply_diff,
    diff_collections,
    fingerprint,
    renumber_rounds,
)
from src.estateflow.customers.schemas import ChecklistItem, Meeting, Property


def _item(item_id: str, text: str = "", memo: str = "") -> dict:
    return {"id": item_id, "text": text, "createdAt": 1, "memo": memo}


class TestDiffCollections:
    def test_identical_collections_produce_empty_diff(self):
        items = [_item("a", "Call"), _item("b", "Visit")]

        diff = diff_collections(items, [dict(i) for i in items])

        assert diff.is_empty
        assert diff.added == [] and diff.updated == [] and diff.removed == []

    def test_added_updated_removed_are_classified(self):
        old = [_item("a", "Call"), _item("b", "Visit")]
        new = [_item("a", "Call back"), _item("c", "Sign")]

        diff = diff_collections(old, new)

        assert [i["id"] for i in diff.added] == ["c"]
        assert [i["id"] for i in diff.updated] == ["a"]
        assert diff.updated[0]["text"] == "Call back"
        assert diff.removed == ["b"]

    def test_insertion_and_deletion_in_one_pass(self):
        old = [_item("a"), _item("b")]
        new = [_item("b"), _item("x")]

        diff = diff_collections(old, new)

        assert [i["id"] for i in diff.added] == ["x"]
        assert diff.updated == []
        assert diff.removed == ["a"]

    def test_key_order_does_not_count_as_change(self):
        old = [{"id": "a", "text": "t", "memo": "m"}]
        new = [{"memo": "m", "text": "t", "id": "a"}]

        assert diff_collections(old, new).is_empty

    def test_model_and_dict_with_same_content_are_equal(self):
        model = ChecklistItem(id="a", text="Call", created_at=1, memo="")

        assert diff_collections([model], [_item("a", "Call")]).is_empty

    def test_excluded_fields_are_ignored(self):
        old = [Meeting(id="m1", round=1, date="2026-01-01", created_at=1)]
        new = [
            Meeting(
                id="m1",
                round=1,
                date="2026-01-01",
                created_at=1,
                properties=[Property(id="p1", raw_input="Apt 3")],
            )
        ]

        assert diff_collections(old, new, exclude=("properties",)).is_empty
        assert not diff_collections(old, new).is_empty

    def test_custom_key(self):
        old = [{"code": "x", "v": 1}]
        new = [{"code": "x", "v": 2}]

        diff = diff_collections(old, new, key="code")

        assert diff.updated == [{"code": "x", "v": 2}]

    def test_fingerprint_is_canonical(self):
        assert fingerprint({"b": 1, "a": 2}) == fingerprint({"a": 2, "b": 1})
        assert fingerprint({"a": 1, "skip": 2}, exclude=("skip",)) == fingerprint({"a": 1})


class TestApplyDiff:
    def test_applying_diff_to_old_yields_new(self):
        old = [_item("a", "1"), _item("b", "2"), _item("c", "3")]
        new = [_item("a", "1"), _item("c", "three"), _item("d", "4")]

        result = apply_diff(old, diff_collections(old, new))

        by_id = {i["id"]: i for i in result}
        assert set(by_id) == {"a", "c", "d"}
        assert by_id["c"]["text"] == "three"
        assert diff_collections(result, new).is_empty

    def test_surviving_order_is_kept_and_additions_appended(self):
        old = [_item("a"), _item("b"), _item("c")]
        new = [_item("c"), _item("a"), _item("z")]

        result = apply_diff(old, diff_collections(old, new))

        assert [i["id"] for i in result] == ["a", "c", "z"]


class TestRenumberRounds:
    def test_rounds_become_dense_in_order(self):
        meetings = [
            Meeting(id="m1", round=1),
            Meeting(id="m3", round=3),
            Meeting(id="m4", round=4),
        ]

        result = renumber_rounds(meetings)

        assert [(m.id, m.round) for m in result] == [("m1", 1), ("m3", 2), ("m4", 3)]

    def test_unchanged_meetings_are_reused(self):
        meetings = [Meeting(id="m1", round=1), Meeting(id="m2", round=2)]

        result = renumber_rounds(meetings)

        assert result[0] is meetings[0]
        assert result[1] is meetings[1]
