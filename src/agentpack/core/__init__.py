"""Core resolution, flow and installation machinery."""
