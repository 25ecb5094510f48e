"""Provider integrations (PiAPI client and offline stub)."""
