"""recon-crawler: a single-target web reconnaissance crawler."""

__version__ = "0.1.0"
