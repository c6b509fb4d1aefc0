import tempfile
from pathlib import Path

import pytest

from report_core.domain.exceptions import BusinessError, ValidationError
from report_core.infrastructure.storage.json_store import JsonSessionStore
from report_core.infrastructure.storage.record_store import JsonRecordStore


def test_session_store_append_patch_and_order():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        m1 = store.append_message("s1", is_from_user=True, text="Is PC 488 a felony?")
        m2 = store.append_message("s1", is_from_user=False, text="")
        store.append_message("other", is_from_user=True, text="unrelated")

        store.patch_message_text(m2, "Under PC 488")
        msgs = store.list_messages_by_session("s1")
        assert [m.id for m in msgs] == [m1, m2]
        assert [m.is_from_user for m in msgs] == [True, False]
        assert msgs[1].text == "Under PC 488"
        assert store.get_message(m2).role == "assistant"


def test_session_store_survives_reopen():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        mid = JsonSessionStore(root=root).append_message("s/with:odd chars", True, "hi")
        reopened = JsonSessionStore(root=root)
        reopened.patch_message_text(mid, "hello")
        msgs = reopened.list_messages_by_session("s/with:odd chars")
        assert len(msgs) == 1
        assert msgs[0].text == "hello"
        assert msgs[0].session_id == "s/with:odd chars"


def test_session_store_missing_message():
    with tempfile.TemporaryDirectory() as d:
        store = JsonSessionStore(root=Path(d) / ".storage")
        assert store.list_messages_by_session("nobody") == []
        with pytest.raises(BusinessError) as exc_info:
            store.patch_message_text("m-missing", "x")
        assert exc_info.value.code == "MESSAGE_NOT_FOUND"


def test_record_store_form_data_and_crime_elements():
    with tempfile.TemporaryDirectory() as d:
        records = JsonRecordStore(root=Path(d) / ".storage")
        cause = records.add_cause({"officer": "Deputy Ruiz", "facts": "left without paying"})
        booking = records.add_booking({"name": "J. Doe"}, charges=["PC 488"], cause_id=cause.id)
        lonely = records.add_booking({"name": "R. Roe"})
        assert records.get_form_data(booking.id) == {"officer": "Deputy Ruiz", "facts": "left without paying"}
        assert records.get_form_data(lonely.id) is None
        assert records.get_form_data("bk-missing") is None

        pc = records.add_penal_code("488", "PC", "PETTY THEFT", "M")
        assert records.get_crime_element_by_pc_id(pc.id) is None
        ce = records.create_crime_element(pc.id, ["took property"], ["CALCRIM 1800"])
        assert records.get_crime_element_by_pc_id(pc.id) == ce


def test_record_store_rejects_invalid_records():
    with tempfile.TemporaryDirectory() as d:
        records = JsonRecordStore(root=Path(d) / ".storage")
        with pytest.raises(ValidationError):
            records.add_penal_code("488", "PC", "PETTY THEFT", "X")


def test_record_store_corrupt_crime_element_is_read_error():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        records = JsonRecordStore(root=root)
        table = root / "records" / "crime_elements.json"
        table.write_text('{"ce-1": {"id": "ce-1", "pc_id": "pc-1", "elements": "not a list"}}', encoding="utf-8")
        with pytest.raises(BusinessError) as exc_info:
            records.get_crime_element_by_pc_id("pc-1")
        assert exc_info.value.code == "STORE_READ_ERROR"
