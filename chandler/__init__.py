"""Chandler: action execution core for conversational commerce.

Turns declarative action configurations into monitored tools, gates
every turn through a multi-layer security judge, rate limits callers,
runs a per-conversation execution state machine that streams its
output, and ingests bulk CSV orders.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
