"""Chronicle: resumable generation of personalised year-of-history books."""

__version__ = "0.1.0"
