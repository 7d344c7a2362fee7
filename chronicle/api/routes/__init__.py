from . import books, jobs

__all__ = ["books", "jobs"]
