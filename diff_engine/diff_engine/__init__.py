"""Core pipeline for pull-request explanation: models, filtering, chunking,
webhook event routing and the account state store."""

__version__ = "0.3.0"
