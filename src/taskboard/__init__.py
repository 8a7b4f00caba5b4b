"""Taskboard — role-based project and task management.

Projects owned by managers, tasks assigned to users, and an admin
surface for the local mirror of the identity provider's user list.
"""

__version__ = "0.1.0"
