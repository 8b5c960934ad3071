"""Quotes subpackage - quote documents, state machine and lifecycle."""
