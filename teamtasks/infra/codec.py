from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from .errors import CorruptRecord, RecordTooLarge

RecordT = TypeVar("RecordT")


class RecordCodec(Generic[RecordT]):
    """Bounded JSON encoding for one record type."""

    def __init__(self, record_type: type[RecordT], max_size: int) -> None:
        self.record_type = record_type
        self.max_size = max_size
        self._adapter = TypeAdapter(record_type)

    def encode(self, record: RecordT) -> bytes:
        data = self._adapter.dump_json(record)
        if len(data) > self.max_size:
            raise RecordTooLarge(
                f"{self.record_type.__name__} encodes to {len(data)} bytes, limit is {self.max_size}"
            )
        return data

    def decode(self, data: bytes) -> RecordT:
        try:
            return self._adapter.validate_json(data)
        except ValidationError as exc:
            raise CorruptRecord(f"stored bytes are not a valid {self.record_type.__name__}") from exc
