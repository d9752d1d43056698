"""Smart Finder: content-addressable index of files under monitored directories."""

__version__ = "1.0.0"
