"""Steam Storage — marketplace price, currency and portfolio valuation sync."""

__version__ = "0.1.0"
