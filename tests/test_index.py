"""Tests for the Tracker secondary index manager."""

import pytest
from sample_models import Comment, Note, Ticket, Unhashable, reverse_keys

from trackdb import UNBOUND, CorruptRecord, Tracker


@pytest.fixture
def tracker():
    return Tracker(["status", "tags"], atomic_fields=["status"])


class TestFieldValues:
    def test_atomic_field_is_one_value(self, tracker):
        assert tracker.field_values(Ticket(status=["a", "b"]), "status") == [("a", "b")]
        assert tracker.field_values(Ticket(status=None), "status") == [None]

    def test_multi_valued_field_is_iterated(self, tracker):
        assert tracker.field_values(Ticket(tags=["x", "y"]), "tags") == ["x", "y"]
        assert tracker.field_values(Ticket(tags=("x",)), "tags") == ["x"]

    def test_multi_valued_scalar_and_none(self, tracker):
        assert tracker.field_values(Ticket(tags="solo"), "tags") == ["solo"]
        assert tracker.field_values(Ticket(tags=None), "tags") == []

    def test_absent_and_unbound(self, tracker):
        assert tracker.field_values(Comment(author="x"), "status") == []
        assert tracker.field_values(Ticket(status=UNBOUND), "status") == []

    def test_nested_values_are_hashable(self, tracker):
        rec = Ticket(status={"b": [1], "a": {2, 1}}, tags=[["x", "y"], {"k": "v"}])
        assert tracker.field_values(rec, "status") == [(("a", (1, 2)), ("b", (1,)))]
        assert tracker.field_values(rec, "tags") == [("x", "y"), (("k", "v"),)]

    def test_unfrozen_record_value(self, tracker):
        rec = Ticket(status=Note(text="hi"))
        assert tracker.field_values(rec, "status") == [("Note", (("text", "hi"),))]


class TestMaintenance:
    def test_insert_and_lookup(self, tracker):
        tracker.index_insert("A", Ticket(status="open", tags=["x", "y"]))
        tracker.index_insert("B", Ticket(status="open", tags=["y"]))
        assert tracker.lookup_value("status", "open") == ["A", "B"]
        assert tracker.lookup_value("tags", "x") == ["A"]
        assert tracker.lookup_value("tags", "y") == ["A", "B"]

    def test_no_duplicate_keys(self, tracker):
        rec = Ticket(status="open", tags=["x", "x"])
        tracker.index_insert("A", rec)
        tracker.index_insert("A", rec)
        assert tracker.lookup_value("tags", "x") == ["A"]

    def test_remove_prunes_empty_values(self, tracker):
        rec = Ticket(status="open", tags=["x"])
        tracker.index_insert("A", rec)
        tracker.index_remove("A", rec)
        assert tracker.lookup_value("status", "open") == []
        assert tracker.values("status") == []

    def test_remove_single_field(self, tracker):
        rec = Ticket(status="open", tags=["x"])
        tracker.index_insert("A", rec)
        tracker.index_remove("A", rec, "tags")
        assert tracker.lookup_value("tags", "x") == []
        assert tracker.lookup_value("status", "open") == ["A"]

    def test_update_applies_delta(self, tracker):
        old = Ticket(status="open", tags=["x", "y"])
        new = Ticket(status="closed", tags=["y", "z"])
        tracker.index_insert("A", old)
        tracker.index_update("A", old, new)
        assert tracker.lookup_value("status", "open") == []
        assert tracker.lookup_value("status", "closed") == ["A"]
        assert tracker.lookup_value("tags", "x") == []
        assert tracker.lookup_value("tags", "y") == ["A"]
        assert tracker.lookup_value("tags", "z") == ["A"]

    def test_set_value(self, tracker):
        tracker.set_value("status", "open", ["B", "A"])
        assert tracker.lookup_value("status", "open") == ["A", "B"]
        tracker.set_value("status", "open", None)
        assert "open" not in tracker.mapping["status"]


class TestLookup:
    def test_list_value_lookup(self, tracker):
        tracker.index_insert("A", Ticket(status=["a", "b"], tags=[["x", "y"]]))
        assert tracker.lookup_value("status", ["a", "b"]) == ["A"]
        assert tracker.lookup_value("status", ("a", "b")) == ["A"]
        assert tracker.lookup_value("tags", ["x", "y"]) == ["A"]

    def test_failed_update_leaves_index_untouched(self, tracker):
        tracker.index_insert("A", Ticket(status="open", tags=["x"]))
        before = {f: {v: set(k) for v, k in t.items()} for f, t in tracker.mapping.items()}
        with pytest.raises(TypeError):
            tracker.index_update(
                "A",
                Ticket(status="open", tags=["x"]),
                Ticket(status="closed", tags=[Unhashable()]),
            )
        assert tracker.mapping == before

    def test_untracked_field_or_unknown_value(self, tracker):
        tracker.index_insert("A", Ticket(status="open", owner="ana"))
        assert tracker.lookup_value("owner", "ana") == []
        assert tracker.lookup_value("status", "never") == []
        assert tracker.lookup_value("status", ["unhashable"]) == []

    def test_default_order_is_lexical(self, tracker):
        for key in [10, 9, 100]:
            tracker.index_insert(key, Ticket(status="open"))
        assert tracker.lookup_value("status", "open") == [10, 100, 9]

    def test_comparator_order(self):
        tracker = Tracker(["status"], atomic_fields=["status"], sort_fns={"status": reverse_keys})
        for key in "ACB":
            tracker.index_insert(key, Ticket(status="open"))
        assert tracker.lookup_value("status", "open") == ["C", "B", "A"]


class TestPersistenceShape:
    def test_to_mapping_lists_keys_in_order(self, tracker):
        tracker.index_insert("C", Ticket(status="open"))
        tracker.index_insert("A", Ticket(status="open"))
        assert tracker.to_mapping() == {"status": {"open": ["A", "C"]}, "tags": {}}

    def test_restore_drops_untracked_fields(self, tracker):
        tracker.restore({"status": {"open": ["A"], "gone": []}, "owner": {"ana": ["A"]}})
        assert tracker.mapping == {"status": {"open": {"A"}}, "tags": {}}

    def test_restore_rejects_bad_shape(self, tracker):
        with pytest.raises(CorruptRecord):
            tracker.restore({"status": ["not", "a", "table"]})
        with pytest.raises(CorruptRecord):
            tracker.restore({"status": {"open": "A"}})


class TestVerify:
    def test_consistent(self, tracker):
        records = {"A": Ticket(status="open", tags=["x"])}
        tracker.index_insert("A", records["A"])
        assert tracker.verify(records) == []

    def test_reports_both_directions(self, tracker):
        records = {"A": Ticket(status="open")}
        tracker.set_value("status", "closed", ["A", "Z"])
        problems = tracker.verify(records)
        assert any("missing from status='open'" in p for p in problems)
        assert any("unknown key 'Z'" in p for p in problems)
        assert any("no longer holds it" in p for p in problems)
