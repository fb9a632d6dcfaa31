from __future__ import annotations

from sqlalchemy import Column, Integer, LargeBinary

from .db import Base


class MemoryBlockModel(Base):
    __tablename__ = "memory_blocks"

    block_no = Column(Integer, primary_key=True, autoincrement=False)
    data = Column(LargeBinary, nullable=False)


class MemoryStateModel(Base):
    __tablename__ = "memory_state"

    id = Column(Integer, primary_key=True, autoincrement=False)
    size_pages = Column(Integer, nullable=False, default=0)
