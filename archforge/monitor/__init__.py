"""Terminal rendering of run reports and ledger history.

Modules
-------
renderer
    ``RunRenderer`` turns ``RunReport`` and ledger entries into Rich
    renderables for terminal display.
"""

from archforge.monitor.renderer import RunRenderer

__all__ = ["RunRenderer"]
