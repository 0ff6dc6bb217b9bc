"""Shared helpers for running commands and loading configuration files."""
