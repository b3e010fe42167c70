"""agentpack command-line interface."""
