"""Command line interface for running a lifecycle-managed demo service."""
