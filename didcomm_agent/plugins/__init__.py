"""Capability plugins supporting messaging."""
