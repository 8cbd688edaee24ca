"""
Core application engine for orchestrating book liberation.

This package contains the primary logic. The `LiberationManager` acts as the
high-level session coordinator, handing each book to a `LiberationPipeline`,
which validates it, drives the decrypt engine and places the resulting files
through the `FilePlacementEngine`. Progress is broadcast on an `EventBus`.
"""
