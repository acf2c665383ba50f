"""Shared media ingestion library for the catalog sync jobs."""
