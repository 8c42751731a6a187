from __future__ import annotations

from fastapi import Depends

from mailsight.modules.finance.extractor import FinancialExtractor
from mailsight.modules.llm.client import CompletionClient, build_openai_client


def get_llm_client() -> CompletionClient:
    return build_openai_client()


def get_financial_extractor(
    client: CompletionClient = Depends(get_llm_client),
) -> FinancialExtractor:
    return FinancialExtractor(client)
