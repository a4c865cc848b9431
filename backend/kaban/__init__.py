"""
Kaban - Agent-Aware Kanban Board
================================

Versioned task board shared by CLI, TUI, MCP and HTTP consumers, with a
sync engine that reconciles coding-agent todo lists against the board.
"""

__version__ = "0.1.0"
