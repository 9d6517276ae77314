"""Ingestion boundary: delivery schemas, outcomes, and process_delivery()."""
