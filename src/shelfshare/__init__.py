"""shelfshare - peer-to-peer book lending marketplace."""

__version__ = "0.1.0"
