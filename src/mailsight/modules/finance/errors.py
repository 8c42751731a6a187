from __future__ import annotations


class FinancialExtractionError(Exception):
    """Base class for outcomes that end an extraction without a document."""


class NoFinancialData(FinancialExtractionError):
    pass


class UnreadableDocument(FinancialExtractionError):
    pass


class ExtractionFailed(FinancialExtractionError):
    pass


class MalformedExtractionResponse(FinancialExtractionError):
    pass
