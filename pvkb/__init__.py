"""pvkb - keyboard-driven PV writes.

Binds single key presses to EPICS process variable writes, from a TOML file:
an absolute set, or an increment of the PV's current value.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
