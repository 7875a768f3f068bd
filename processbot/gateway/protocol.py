"""GitHub webhook payloads and signature verification."""

from __future__ import annotations

import hashlib
import hmac

from pydantic import BaseModel

from processbot.github.models import Issue, Repository

# Issue actions after which the project link or the issue itself may have changed.
EVALUATED_ISSUE_ACTIONS = frozenset(
    {"opened", "reopened", "edited", "transferred", "labeled", "unlabeled"}
)


class IssuesEventPayload(BaseModel):
    action: str
    issue: Issue
    repository: Repository

    def issue_with_repository(self) -> Issue:
        return self.issue.model_copy(update={"repository": self.repository})


def verify_signature(secret: str, body: bytes, signature_header: str) -> bool:
    """Check X-Hub-Signature-256 (`sha256=<hex hmac of the raw body>`)."""
    if not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header.removeprefix("sha256="))
