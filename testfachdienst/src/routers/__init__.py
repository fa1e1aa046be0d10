"""API routers."""

from testfachdienst.src.routers import docs, erezept, hello, jobs

__all__ = ["docs", "erezept", "hello", "jobs"]
