"""PDV Sentinel: point-of-sale fraud detection and ERP synchronization."""

__version__ = "0.1.0"
