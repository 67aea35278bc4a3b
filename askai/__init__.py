"""askai — single-shot AI chat requests with per-user encrypted keys and throttling."""

__version__ = "1.0.0"
