"""Test doubles for the chat widget."""
