"""Batched SOL transfers settled through Jito bundles."""
