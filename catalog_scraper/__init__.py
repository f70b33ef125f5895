"""Multi-channel product catalog crawler for Commerce Cloud storefronts."""

__version__ = "0.1.0"
