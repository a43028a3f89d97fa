"""Layered configuration merged from memory, environment variables and YAML files by priority."""

__version__ = "0.1.0"