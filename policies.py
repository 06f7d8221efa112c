"""
Deterministic correction stage applied after a model proposal.

Each pipeline step that asks a model for structured output runs the reply
through a policy: ``policy(proposal, request, log) -> corrected``. The
request is always the user's original text, so policies can re-scan it for
the signals the model may have missed or invented.
"""
import logging
from typing import Any, Optional

logger = logging.getLogger("policies")


class CorrectionPolicy:
    name = "correction"

    def apply(self, proposal: Any, request: str, log: logging.Logger) -> Any:
        raise NotImplementedError

    def __call__(self, proposal: Any, request: str, log: Optional[logging.Logger] = None) -> Any:
        return self.apply(proposal, request or "", log or logger)
