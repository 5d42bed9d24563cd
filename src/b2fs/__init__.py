"""b2fs - filesystem-style adapter over a Backblaze B2 bucket."""

__version__ = "0.1.0"
