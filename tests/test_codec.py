"""Tests for the record and hash-table text codec."""

import copy
import math
import pickle

import pytest
from sample_models import Comment, Thread, Ticket

from trackdb import UNBOUND, CorruptRecord
from trackdb.codec import (
    decode_mapping,
    decode_record,
    decode_value,
    encode_mapping,
    encode_record,
    encode_value,
)

HEADER = "#s(hash-table size {} test equal rehash-size 1.5 rehash-threshold 0.8125 data ("


class TestRecordForm:
    def test_single_line_layout(self):
        rec = Ticket(status="open", tags=["x", "y"], owner=UNBOUND, priority=2)
        assert encode_record(rec) == '#s(record Ticket :status "open" :tags ("x" "y") :owner #unbound :priority 2)'

    def test_round_trip_nested_records(self):
        rec = Thread(
            title="Launch",
            first=Comment(author="ana", body='she said "go"\nthen left'),
            meta={"votes": 3, "flags": ("a", 1.5), "extra": None},
        )
        assert decode_record(encode_record(rec)) == rec

    def test_unbound_distinct_from_none(self):
        unbound = decode_record(encode_record(Ticket(owner=UNBOUND)))
        null = decode_record(encode_record(Ticket(owner=None)))
        assert unbound.owner is UNBOUND
        assert null.owner is None

    def test_unbound_survives_copy_and_pickle(self):
        assert copy.deepcopy(UNBOUND) is UNBOUND
        assert pickle.loads(pickle.dumps(UNBOUND)) is UNBOUND
        rec = copy.deepcopy(Ticket(owner=UNBOUND))
        assert rec.owner is UNBOUND

    def test_missing_fields_become_unbound(self):
        rec = decode_record('#s(record Ticket :status "open")')
        assert rec.status == "open"
        assert rec.tags is UNBOUND
        assert rec.priority is UNBOUND

    def test_scalars_round_trip(self):
        for value in [0, -7, 2.5, 1e20, True, False, None, "", "ünïcode ✓", "back\\slash\ttab"]:
            assert decode_value(encode_value(value)) == value

    def test_special_floats(self):
        assert decode_value(encode_value(math.inf)) == math.inf
        assert decode_value(encode_value(-math.inf)) == -math.inf
        assert math.isnan(decode_value(encode_value(math.nan)))

    def test_tuple_and_list_kept_apart(self):
        assert decode_value(encode_value([1, (2, 3)])) == [1, (2, 3)]
        assert isinstance(decode_value("[1 2]"), tuple)

    def test_sets_print_sorted(self):
        assert encode_value({"b", "a", "c"}) == '("a" "b" "c")'

    def test_unencodable_value(self):
        with pytest.raises(TypeError):
            encode_value(object())


class TestRecordDecodeErrors:
    @pytest.mark.parametrize("text", [
        "",
        "#s(record Ticket :status",
        '#s(record NoSuchKind :a 1)',
        '#s(record Ticket :colour "red")',
        '#s(record Ticket status "open")',
        '#s(record Ticket) trailing',
        '(__import__ "os")',
        '#s(record Ticket :status "open"]',
        '"unterminated',
    ])
    def test_malformed_input(self, text):
        with pytest.raises(CorruptRecord):
            decode_record(text)

    def test_wrong_family(self):
        text = encode_record(Comment(author="x"))
        with pytest.raises(CorruptRecord) as exc_info:
            decode_record(text, source="objects/A", family=Ticket)
        assert "objects/A" in str(exc_info.value)
        assert "Ticket" in exc_info.value.reason

    def test_top_level_not_a_record(self):
        with pytest.raises(CorruptRecord):
            decode_record('"just a string"')


class TestContainerForm:
    def test_nested_layout(self):
        text = encode_mapping({"b": 2, "a": {"x": [1]}})
        assert text == (
            HEADER.format(2) + "\n"
            '  "a" ' + HEADER.format(1) + "\n"
            '    "x" (1)\n'
            "  ))\n"
            '  "b" 2\n'
            "))\n"
        )

    def test_empty_mapping(self):
        text = encode_mapping({})
        assert text == HEADER.format(0) + "\n))\n"
        assert decode_mapping(text) == {}

    def test_composite_keys_sort_by_first_component(self):
        text = encode_mapping({("b", 1): "second", ("a", 9): "first"})
        assert text.index('["a" 9]') < text.index('["b" 1]')

    def test_independent_of_insertion_order(self):
        forward = {"k2": 1, 3: "x", "k1": {"z": 1, "y": 2}, None: 0}
        backward = dict(reversed(list(forward.items())))
        assert encode_mapping(forward) == encode_mapping(backward)

    def test_deterministic(self):
        mapping = {"a": Ticket(status="open"), "b": Ticket(tags=["x"])}
        assert encode_mapping(mapping) == encode_mapping(mapping)

    def test_round_trip_with_records(self):
        mapping = {
            "A": Ticket(status="open", tags=["x"]),
            ("B", 2): Thread(first=Comment(body="hi"), meta={"n": {"deep": UNBOUND}}),
        }
        assert decode_mapping(encode_mapping(mapping)) == mapping

    def test_index_shape_round_trip(self):
        index = {"status": {"open": ["A", "C"], "closed": ["B"]}, "tags": {}}
        assert decode_mapping(encode_mapping(index)) == index

    def test_decode_rejects_non_table(self):
        with pytest.raises(CorruptRecord):
            decode_mapping(encode_record(Ticket()))

    def test_decode_rejects_unknown_test(self):
        text = encode_mapping({"a": 1}).replace("test equal", "test string=")
        with pytest.raises(CorruptRecord):
            decode_mapping(text)

    def test_decode_rejects_dangling_key(self):
        with pytest.raises(CorruptRecord):
            decode_mapping(HEADER.format(1) + '\n  "a"\n))\n')
