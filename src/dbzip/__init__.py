"""DbZip: exclusive database backup, compression, verification and cleanup."""

__version__ = "0.1.0"
