"""Goal-directed web crawl scheduler."""
from __future__ import annotations

__version__ = "0.1.0"
