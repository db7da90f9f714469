"""
NetWarden Output

Console rendering for CLI scan and monitoring output.
"""

from netwarden.output.console import NetWardenConsole, get_console

__all__ = [
    "NetWardenConsole",
    "get_console",
]
