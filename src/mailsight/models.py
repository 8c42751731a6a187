"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

from mailsight.modules.summaries.models import EmailSummary  # noqa: F401
