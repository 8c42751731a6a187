from __future__ import annotations

import mailsight.models  # noqa: F401
from mailsight.core.config import settings
from mailsight.core.db import engine
from mailsight.core.logging import get_logger, log_event
from mailsight.core.models import Base

logger = get_logger(__name__)


def bootstrap() -> None:
    if settings.environment in {"dev", "test"} and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)
        log_event(logger, "bootstrap.schema_created", environment=settings.environment)
