"""HTTP service that explains pull requests on GitHub."""

__version__ = "0.3.0"
