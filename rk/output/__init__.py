"""Output formatting and console abstraction."""

from rk.output.console import ConsoleProtocol, MockConsole, PrefixedConsole, RichConsole, Style

__all__ = ["ConsoleProtocol", "MockConsole", "PrefixedConsole", "RichConsole", "Style"]
