"""
Airtable Edge Proxy — Access Policy Unit Tests
===============================================

What we test:
    ✅ Segment form: 2 or 3 segments, exact base/table match, opaque record id
    ✅ Dot-segment record ids are rejected in both forms
    ✅ Embedded form: base prefix, encoded and decoded table spellings
    ✅ Every rejection carries its specific reason string
"""

import pytest

from airtable_proxy.services.access_policy import (
    BASE_NOT_ALLOWED,
    INVALID_FORMAT,
    MISSING_PATH,
    TABLE_NOT_ALLOWED,
    AccessPolicy,
    PathForm,
    ResourcePath,
)

BASE = "appTEST1234567890"
TABLES = {"Clients", "Calls", "Team Members", "Team%20Members"}


class TestSegmentForm:
    def setup_method(self):
        self.policy = AccessPolicy({BASE}, TABLES, form=PathForm.SEGMENTS)

    def test_base_and_table(self):
        result = self.policy.validate(f"{BASE}/Clients")
        assert result.valid
        assert result.resource == ResourcePath(BASE, "Clients", None)

    def test_record_id_passed_through(self):
        result = self.policy.validate(f"{BASE}/Clients/recABC123")
        assert result.valid
        assert result.resource.record_id == "recABC123"

    def test_empty_segments_are_ignored(self):
        result = self.policy.validate(f"/{BASE}//Clients/")
        assert result.valid
        assert result.resource.table_name == "Clients"

    @pytest.mark.parametrize("path", ["", BASE, f"{BASE}/Clients/rec1/extra"])
    def test_wrong_segment_count(self, path):
        result = self.policy.validate(path)
        assert not result.valid
        assert result.error == INVALID_FORMAT

    def test_unknown_base(self):
        result = self.policy.validate("appOther/Clients")
        assert not result.valid
        assert result.error == BASE_NOT_ALLOWED

    @pytest.mark.parametrize("table", ["Clients2", "clients", "Client", "Secrets"])
    def test_unknown_table(self, table):
        result = self.policy.validate(f"{BASE}/{table}")
        assert not result.valid
        assert result.error == TABLE_NOT_ALLOWED

    def test_decoded_table_with_space(self):
        assert self.policy.validate(f"{BASE}/Team Members").valid

    @pytest.mark.parametrize("record", [".", ".."])
    def test_dot_segment_record_rejected(self, record):
        result = self.policy.validate(f"{BASE}/Clients/{record}")
        assert not result.valid
        assert result.error == INVALID_FORMAT


class TestEmbeddedForm:
    def setup_method(self):
        self.policy = AccessPolicy({BASE}, TABLES, form=PathForm.EMBEDDED)

    @pytest.mark.parametrize("path", [None, ""])
    def test_missing_path(self, path):
        result = self.policy.validate(path)
        assert not result.valid
        assert result.error == MISSING_PATH

    def test_base_and_table(self):
        result = self.policy.validate(f"{BASE}/Calls")
        assert result.valid
        assert result.resource == ResourcePath(BASE, "Calls", None)

    def test_record_id(self):
        result = self.policy.validate(f"{BASE}/Calls/recXYZ")
        assert result.resource.record_id == "recXYZ"

    def test_record_id_is_decoded(self):
        result = self.policy.validate(f"{BASE}/Calls/rec%3Fx")
        assert result.resource.record_id == "rec?x"

    @pytest.mark.parametrize("record", [".", "..", "%2E", "%2e%2E"])
    def test_dot_segment_record_rejected(self, record):
        result = self.policy.validate(f"{BASE}/Clients/{record}")
        assert not result.valid
        assert result.error == INVALID_FORMAT

    def test_encoded_table_accepted(self):
        result = self.policy.validate(f"{BASE}/Team%20Members")
        assert result.valid
        assert result.resource.table_name == "Team Members"

    def test_decoded_table_accepted(self):
        result = self.policy.validate(f"{BASE}/Team Members")
        assert result.valid
        assert result.resource.table_name == "Team Members"

    def test_encoded_table_matches_decoded_entry_only(self):
        policy = AccessPolicy({BASE}, {"Team Members"}, form=PathForm.EMBEDDED)
        assert policy.validate(f"{BASE}/Team%20Members").valid

    def test_unknown_base(self):
        result = self.policy.validate("appOther/Clients")
        assert result.error == BASE_NOT_ALLOWED

    def test_base_prefix_is_not_enough(self):
        result = self.policy.validate(f"{BASE}EXTRA/Clients")
        assert result.error == BASE_NOT_ALLOWED

    def test_base_without_table(self):
        result = self.policy.validate(f"{BASE}/")
        assert result.error == INVALID_FORMAT

    def test_too_many_segments(self):
        result = self.policy.validate(f"{BASE}/Clients/rec1/more")
        assert result.error == INVALID_FORMAT

    def test_unknown_table(self):
        result = self.policy.validate(f"{BASE}/Clients2")
        assert result.error == TABLE_NOT_ALLOWED
