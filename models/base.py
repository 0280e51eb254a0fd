# app/models/base.py
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def enum_values(enum_cls):
    """Persist enum values ("campaign-leader") rather than member names."""
    return [member.value for member in enum_cls]
