"""Browser Export: print rendered web pages to PDF with headless Chromium."""

__version__ = "1.0.0"
