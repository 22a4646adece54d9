"""
Tests for the custom field and event merge rules.
"""
import pytest

from tribu.outbox.merger import (
    LINK_KEY,
    NEXT_CONTACT_EVENT_TYPE,
    PACK_KEY,
    build_packed_value,
    make_link,
    merge_custom_fields,
    merge_events,
)
from tribu.outbox.payloads import Dimensions, LinkOnlyChange, NormalChange, from_envelope

BASE_URL = "https://tribu.example/app"


@pytest.fixture
def change():
    return NormalChange(
        local_id="C1",
        remote_id="people/c1",
        dims=Dimensions(conf=0.5, emo=1.0, ene=None, est=2.0, rep=0.0),
        cadence="3M",
        total=4.5,
        next_contact_date="2025-06-01",
    )


class TestPackedValue:
    def test_format(self, change):
        assert build_packed_value(change) == "0.5 | 1 |  | 2 | 0 | 4.5 | 3M"

    def test_decimal_comma_is_written_with_a_point(self):
        change = from_envelope({"localId": "C1", "dims": {"conf": "0,5", "emo": "1,0"}, "total": "1,5"})
        assert build_packed_value(change) == "0.5 | 1 |  |  |  | 1.5 | "

    def test_all_blank(self):
        assert build_packed_value(NormalChange("C1", "people/c1")) == " |  |  |  |  |  | "


class TestMakeLink:
    def test_appends_query(self):
        assert make_link("C1", BASE_URL) == f"{BASE_URL}?cid=C1"

    def test_extends_existing_query(self):
        assert make_link("C1", f"{BASE_URL}?view=x") == f"{BASE_URL}?view=x&cid=C1"

    def test_quotes_id(self):
        assert make_link("a b/c", BASE_URL) == f"{BASE_URL}?cid=a%20b%2Fc"

    @pytest.mark.parametrize("local_id, base_url", [("", BASE_URL), ("C1", ""), (None, None)])
    def test_empty_when_unavailable(self, local_id, base_url):
        assert make_link(local_id, base_url) == ""


class TestMergeCustomFields:
    EXISTING = [
        {"key": "Empresa", "value": "ACME"},
        {"key": "tr_emo", "value": "1"},
        {"key": "Tribu", "value": "legacy"},
        {"key": PACK_KEY, "value": "old"},
        {"key": LINK_KEY, "value": "old-link"},
        {"key": "Cumple", "value": None},
    ]

    def test_normal_replaces_owned_keys(self, change):
        merged = merge_custom_fields(self.EXISTING, change, BASE_URL)

        assert merged == [
            {"key": "Empresa", "value": "ACME"},
            {"key": "Cumple", "value": ""},
            {"key": PACK_KEY, "value": "0.5 | 1 |  | 2 | 0 | 4.5 | 3M"},
            {"key": LINK_KEY, "value": f"{BASE_URL}?cid=C1"},
        ]

    def test_link_only_keeps_pack_and_legacy(self):
        merged = merge_custom_fields(self.EXISTING, LinkOnlyChange("C1", "people/c1"), BASE_URL)

        keys = [item["key"] for item in merged]
        assert keys == ["Empresa", "tr_emo", PACK_KEY, "Cumple", LINK_KEY]
        assert merged[2]["value"] == "old"
        assert merged[-1]["value"] == f"{BASE_URL}?cid=C1"

    def test_no_duplicate_owned_keys(self, change):
        merged = merge_custom_fields(self.EXISTING + [{"key": PACK_KEY, "value": "dup"}], change, BASE_URL)
        keys = [item["key"] for item in merged]
        assert keys.count(PACK_KEY) == 1
        assert keys.count(LINK_KEY) == 1

    def test_handles_missing_list(self, change):
        merged = merge_custom_fields(None, change, BASE_URL)
        assert [item["key"] for item in merged] == [PACK_KEY, LINK_KEY]

    def test_no_link_without_base_url(self, change):
        merged = merge_custom_fields([], change, "")
        assert [item["key"] for item in merged] == [PACK_KEY]


class TestMergeEvents:
    EXISTING = [
        {"type": NEXT_CONTACT_EVENT_TYPE, "date": {"year": 2024, "month": 1, "day": 1}},
        {"type": "anniversary", "date": {"month": 6, "day": 1}},
        {"type": NEXT_CONTACT_EVENT_TYPE, "date": {"year": 2024, "month": 2, "day": 1}},
    ]

    def test_replaces_next_contact(self, change):
        merged = merge_events(self.EXISTING, change)

        assert merged[0]["type"] == "anniversary"
        assert merged[1] == {
            "type": NEXT_CONTACT_EVENT_TYPE,
            "formattedType": NEXT_CONTACT_EVENT_TYPE,
            "date": {"year": 2025, "month": 6, "day": 1},
            "metadata": {"primary": True},
        }
        assert len(merged) == 2

    def test_removes_next_contact_when_date_empty(self):
        merged = merge_events(self.EXISTING, NormalChange("C1", "people/c1", next_contact_date=""))
        assert [ev["type"] for ev in merged] == ["anniversary"]

    def test_unparseable_date_removes_event(self):
        merged = merge_events(self.EXISTING, NormalChange("C1", "people/c1", next_contact_date="soon"))
        assert [ev["type"] for ev in merged] == ["anniversary"]

    def test_link_only_leaves_events_alone(self):
        assert merge_events(self.EXISTING, LinkOnlyChange("C1")) == self.EXISTING
