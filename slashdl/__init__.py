"""Chapter catalog and page image downloader for slashlib."""

__version__ = "0.1.0"
