from __future__ import annotations


class CaseflowError(Exception):
    pass


class SlaConfigurationError(CaseflowError, ValueError):
    pass
