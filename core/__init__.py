"""Core module - records, errors, configuration and logging.

Everything here is shared by extraction, inventory, reception and the
Temporal/HTTP surfaces. It has no knowledge of where documents come from
or how the store is hosted.
"""

__version__ = "1.0.0"
