"""Core configuration, logging, errors and data models."""
