"""LLM-backed summarisation of pull-request batches."""

__version__ = "0.3.0"
