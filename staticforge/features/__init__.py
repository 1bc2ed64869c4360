"""Built-in StaticForge features.

Each subdirectory holds one feature with a ``feature.py`` entry point; the
plugin registry loads them the same way it loads a project's own features.
"""
