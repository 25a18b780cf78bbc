"""
Ticket Lifecycle.

Create, trash, restore, copy and purge permission-gated tickets stored in
Neo4j, keeping tag and permission references in step with every move.
"""

__version__ = "0.1.0"
