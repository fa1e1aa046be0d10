"""Persistence layer."""

from testfachdienst.src.repositories.erezept_repo import DuplicatePrescriptionError, ErezeptRepository

__all__ = ["DuplicatePrescriptionError", "ErezeptRepository"]
