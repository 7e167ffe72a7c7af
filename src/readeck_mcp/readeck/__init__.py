"""Readeck upstream side: schemas, response normalization and the API client."""
