"""
taskchain - file-backed task chains with a kanban lifecycle.

Tasks live as markdown documents in status directories; chains group them
under a change request. See taskchain.tasks for the public API.
"""

__version__ = "0.1.0"
