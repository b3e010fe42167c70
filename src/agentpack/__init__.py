"""agentpack: a package manager for portable AI coding-tool configuration."""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"
