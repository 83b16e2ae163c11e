"""Digest rendering and publishing targets."""
