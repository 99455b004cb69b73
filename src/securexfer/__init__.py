"""securexfer - Resumable, encrypted, chunked file transfers over HTTP(S)."""

__version__ = "0.1.0"
