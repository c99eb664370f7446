"""Starlette middleware and log formatting for the webhook service."""
