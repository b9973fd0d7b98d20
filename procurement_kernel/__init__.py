"""
Procurement Kernel

Shared foundation for the studio procurement workflow:
- Currency-safe money values with explicit rounding
- Typed, coded exceptions
- Declarative workflow (state machine) definitions
- Structured JSON logging
- SQLAlchemy persistence base with compare-and-set versioning
- Yearly document sequences and an append-only activity trail
"""

__version__ = "0.1.0"
