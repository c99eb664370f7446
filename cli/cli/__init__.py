"""Explain This PR command-line interface."""
