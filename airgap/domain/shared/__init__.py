"""Shared domain building blocks: errors, value objects, retry."""
