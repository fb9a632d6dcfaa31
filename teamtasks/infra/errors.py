"""Fatal storage failures.

These abort the current call. The services never catch them, so a caller
sees them as an internal failure rather than a domain error.
"""
from __future__ import annotations


class StorageError(Exception):
    pass


class AllocationError(StorageError):
    pass


class OutOfBounds(StorageError):
    pass


class SegmentAlreadyClaimed(StorageError):
    pass


class CellInitError(StorageError):
    pass


class CellSetError(StorageError):
    pass


class CounterExhausted(StorageError):
    pass


class RecordTooLarge(StorageError):
    pass


class CorruptRecord(StorageError):
    pass
