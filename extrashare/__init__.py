"""ExtraShare BXC staking-event backend."""

__version__ = "0.1.0"
