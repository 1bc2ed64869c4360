"""StaticForge static site generator.

This package turns a tree of content files into a rendered static site by running
each file through a fixed sequence of events that independent plugins ("features")
hook into.

The main entry point is the CLI module, which renders a whole site, renders a
single page, or lists the features that would take part in a run.

Architecture:
- EventBus: named events, priority-ordered listeners, parameter threading.
- PluginRegistry: discovers features on disk and boots them once per run.
- RenderLoop: threads a RenderContext through the per-file events.
- Orchestrator: runs the fixed lifecycle and isolates plugin failures.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
