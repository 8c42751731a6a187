from __future__ import annotations

import json
import os
import shutil
from pathlib import Path

import pytest

# Set env before any mailsight imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.mailsight_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")
os.environ.setdefault("BATCH_DELAY_MS", "0")

DEFAULT_SUMMARY = json.dumps(
    {
        "summary": "The sender shares an update.",
        "category": "Work",
        "keywords": ["update", "status"],
    }
)
NO_ITEMS = json.dumps({"items": []})


@pytest.fixture(autouse=True)
def _reset_db_and_storage() -> None:
    import mailsight.models  # noqa: F401
    import mailsight.core.storage as storage_mod
    from mailsight.core.db import engine
    from mailsight.core.models import Base

    storage_mod._storage = None
    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


@pytest.fixture()
def make_llm():
    """Factory for a scripted completion client.

    Summarization and extraction requests are told apart by their system prompt.
    Each reply may be a string, an exception to raise, or a list consumed in order.
    """
    from mailsight.modules.llm.client import CompletionClient

    class FakeLLM(CompletionClient):
        name = "fake"

        def __init__(self, *, summary=DEFAULT_SUMMARY, extraction=NO_ITEMS) -> None:
            self.summary = summary
            self.extraction = extraction
            self.prompts: list[str] = []
            self.extraction_prompts: list[str] = []

        def complete_json(self, *, system, prompt, temperature, max_tokens):
            self.prompts.append(prompt)
            if "email analysis" in system:
                reply = self.summary
            else:
                self.extraction_prompts.append(prompt)
                reply = self.extraction
            if isinstance(reply, list):
                reply = reply.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply

    return FakeLLM
