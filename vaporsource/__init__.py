"""
Job posting ingestion pipeline.

Scrapes a job board, classifies each posting with a language model and
stores the relevant ones, with bounded concurrency at every stage.
"""

__version__ = "1.0.0"
