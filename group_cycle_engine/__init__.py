"""
Group Cycle Engine
==================
A read-only scanner that finds circular group nesting in a directory.
Builds the group-in-group membership graph from a tenant (or an offline
snapshot) and reports every membership chain that loops back on itself.

WARNING: This tool operates in STRICT READ-ONLY mode.
         No write operations will be performed against the directory.
"""

__version__ = "1.0.0"
__author__ = "Group Cycle Engine"
__mode__ = "READ-ONLY"
