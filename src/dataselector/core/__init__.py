"""Core configuration, logging and tracing."""
