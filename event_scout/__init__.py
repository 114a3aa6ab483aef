"""Top-level package for the event-scout project.

Run the pipeline with `python -m event_scout discover|extract|cleanup-duplicates`
or call the workflow `run()` helpers directly, e.g.
`from event_scout.workflows import extraction_pipeline; extraction_pipeline.run()`.
"""

from importlib import metadata as _metadata

try:
    __version__: str = _metadata.version("event-scout")
except _metadata.PackageNotFoundError:  # pragma: no cover – running from source
    __version__ = "0.0.0"

__all__ = ["__version__"]
