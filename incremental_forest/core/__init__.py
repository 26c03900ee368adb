"""Configuration, exceptions and shared types for Incremental Forest."""
