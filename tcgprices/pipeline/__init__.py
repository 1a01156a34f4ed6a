"""Ingestion stages: upstream client, catalog and price seeding, archive import."""
