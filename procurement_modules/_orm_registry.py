"""
Module ORM Registry (``procurement_modules._orm_registry``).

Responsibility
--------------
Ensure all SQLAlchemy ORM models are imported so that ``Base.metadata``
contains their table definitions before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``procurement_kernel.db.engine.create_tables``; nothing else in the kernel
imports module code.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``procurement_modules.*.orm`` module.

    Kernel tables are registered first; module tables reference them.
    Idempotent -- repeated calls are harmless.
    """
    import procurement_kernel.models  # noqa: F401
    import procurement_kernel.services.sequence_service  # noqa: F401  # document_counters
    # fmt: off
    import procurement_modules.rfq.orm  # noqa: F401
    import procurement_modules.client_quote.orm  # noqa: F401
    import procurement_modules.purchase_order.orm  # noqa: F401
    # fmt: on
