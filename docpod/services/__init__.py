"""Application services: ingestion, retrieval and grounded question answering."""
