import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ValidationError as PydanticValidationError

from report_core.config.settings import settings
from report_core.domain.exceptions import BusinessError, ValidationError
from report_core.domain.records import BookingForm, CauseForm, CrimeElement, PenalCode

T = TypeVar("T", bound=BaseModel)


class JsonRecordStore:
    """罪名、要件与表单的 JSON 存储。

    每类记录一个文件（<root>/records/<kind>.json，id -> 记录），
    读写时用 pydantic 模型校验，坏数据在边界处被拒绝。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve() / "records"
        self._root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    # ---- penal codes ---------------------------------------------

    def add_penal_code(self, code_number: str, code_type: str, narrative: str, m_f: str) -> PenalCode:
        return self._insert(
            "penal_codes",
            PenalCode,
            {"code_number": code_number, "code_type": code_type, "narrative": narrative, "m_f": m_f},
            prefix="pc",
        )

    def get_penal_code(self, pc_id: str) -> Optional[PenalCode]:
        return self._get("penal_codes", PenalCode, pc_id)

    # ---- crime elements ------------------------------------------

    def create_crime_element(self, pc_id: str, elements: List[str], calcrim_example: List[str]) -> CrimeElement:
        return self._insert(
            "crime_elements",
            CrimeElement,
            {"pc_id": pc_id, "elements": elements, "calcrim_example": calcrim_example},
            prefix="ce",
        )

    def get_crime_element_by_pc_id(self, pc_id: str) -> Optional[CrimeElement]:
        with self._lock:
            table = self._read_table("crime_elements")
        for raw in table.values():
            if raw.get("pc_id") == pc_id:
                try:
                    return CrimeElement.model_validate(raw)
                except PydanticValidationError as e:
                    raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        return None

    # ---- forms ---------------------------------------------------

    def add_cause(self, data: Dict[str, Any]) -> CauseForm:
        return self._insert("causes", CauseForm, {"data": data}, prefix="cause")

    def add_booking(
        self,
        data: Dict[str, Any],
        charges: Optional[List[Any]] = None,
        cause_id: Optional[str] = None,
    ) -> BookingForm:
        return self._insert(
            "bookings",
            BookingForm,
            {"data": data, "charges": charges or [], "cause_id": cause_id},
            prefix="bk",
        )

    def get_form_data(self, booking_id: str) -> Optional[Dict[str, Any]]:
        """返回预订表单关联的 probable cause 数据；没有关联时返回 None。"""
        booking = self._get("bookings", BookingForm, booking_id)
        if booking is None or not booking.cause_id:
            return None
        cause = self._get("causes", CauseForm, booking.cause_id)
        return cause.data if cause else None

    # ---- helpers -------------------------------------------------

    def _insert(self, kind: str, model: Type[T], fields: Dict[str, Any], prefix: str) -> T:
        rid = f"{prefix}-{uuid4().hex}"
        try:
            record = model.model_validate({"id": rid, **fields})
        except PydanticValidationError as e:
            raise ValidationError(code="VALIDATION_ERROR", message=str(e))
        with self._lock:
            table = self._read_table(kind)
            table[rid] = record.model_dump()
            self._write_table(kind, table)
        return record

    def _get(self, kind: str, model: Type[T], rid: str) -> Optional[T]:
        with self._lock:
            raw = self._read_table(kind).get(rid)
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))

    def _read_table(self, kind: str) -> Dict[str, Dict[str, Any]]:
        path = self._root / f"{kind}.json"
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except Exception as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        return data if isinstance(data, dict) else {}

    def _write_table(self, kind: str, table: Dict[str, Dict[str, Any]]) -> None:
        path = self._root / f"{kind}.json"
        tmp_path = self._root / f"{kind}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(table, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except Exception as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
