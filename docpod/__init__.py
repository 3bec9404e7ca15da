"""docpod: document Q&A and podcast synthesis over a content-addressed store."""

__version__ = "0.1.0"
