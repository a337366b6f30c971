# =============================================================================
# site_core/subscription/limit_gate.py
# Plan Usage Limits
# =============================================================================
"""
LimitGate - cooperative check of plan usage before an action runs.

The server computes the aggregates; this gate only reads them. A ``False``
from ``enforce_limit`` means the caller must not proceed. The gate is not the
real enforcement point (server-side authorization is).
"""

from __future__ import annotations
import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Dict, Literal, Optional
import logging

from site_core.errors import LimitCheckError
from site_core.ui.notifications import DESTRUCTIVE, Notifier

logger = logging.getLogger(__name__)

LimitKind = Literal["projects", "users", "storage", "versions", "collaborators"]
LIMIT_KINDS = ("projects", "users", "storage", "versions", "collaborators")
DOCUMENT_KINDS = {
    # kind: (counted table, limits key)
    "versions": ("file_versions", "max_versions_per_file"),
    "collaborators": ("file_collaborators", "max_collaborators"),
}
LIMIT_NOUNS = {
    "projects": "project",
    "users": "user",
    "storage": "storage",
    "versions": "file version",
    "collaborators": "collaborator",
}
UNLIMITED = -1


@dataclass(frozen=True)
class LimitCheck:
    allowed: bool
    current: int
    limit: int
    # True when the aggregate could not be read; the check then fails closed
    failed: bool = False

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DENIED = LimitCheck(allowed=False, current=0, limit=0, failed=True)


class LimitGate:
    """
    Usage:
        gate = LimitGate(supabase, notifier)
        if not await gate.enforce_limit("projects"):
            return
    """

    def __init__(self, client, notifier: Notifier):
        self.client = client
        self.notifier = notifier
        # Results of this session only; never persisted
        self.limits: Dict[str, Optional[LimitCheck]] = {kind: None for kind in LIMIT_KINDS}

    async def check_limit(self, kind: LimitKind, context_id: Optional[str] = None) -> LimitCheck:
        """
        Read the usage aggregate for ``kind``.

        Raises:
            ValueError: unknown kind, or a document kind without ``context_id``
        """
        if kind not in LIMIT_KINDS:
            raise ValueError(f"Unknown limit type: {kind}")
        if kind in DOCUMENT_KINDS and not context_id:
            raise ValueError(f"Document ID required for {kind} limit check")

        try:
            if kind in DOCUMENT_KINDS:
                result = await self._check_document_limit(kind, context_id)
            else:
                result = await self._check_usage_limit(kind, context_id)
        except Exception as e:
            error = e if isinstance(e, LimitCheckError) else LimitCheckError(
                f"Could not check {LIMIT_NOUNS[kind]} limit: {e}", kind=kind
            )
            logger.error(str(error))
            self.notifier.notify("Limit check failed", error.message, variant=DESTRUCTIVE)
            result = DENIED

        self.limits[kind] = result
        return result

    async def enforce_limit(self, kind: LimitKind, context_id: Optional[str] = None) -> bool:
        result = await self.check_limit(kind, context_id)
        # A failed check was already reported by check_limit
        if not result.allowed and not result.failed:
            self.notifier.notify(
                "Limit Reached",
                f"You've reached your {LIMIT_NOUNS[kind]} limit. Upgrade your plan to continue.",
                variant=DESTRUCTIVE,
            )
        return result.allowed

    async def check_all_limits(self) -> Dict[str, LimitCheck]:
        kinds = ("projects", "users", "storage")
        results = await asyncio.gather(*(self.check_limit(kind) for kind in kinds))
        return dict(zip(kinds, results))

    # =========================================================================
    # BACKEND READS
    # =========================================================================

    async def _check_usage_limit(self, kind: str, context_id: Optional[str] = None) -> LimitCheck:
        params = {"limit_type": kind, "document_id": context_id}
        response = await self.client.rpc("check_usage_limit", params).execute()
        return self._parse(kind, response.data)

    async def _check_document_limit(self, kind: str, document_id: str) -> LimitCheck:
        table, limit_key = DOCUMENT_KINDS[kind]

        limits_response = await self.client.rpc("get_subscription_limits", {}).execute()
        limits = limits_response.data or {}
        if isinstance(limits, list):
            limits = limits[0] if limits else {}
        if limit_key not in limits:
            raise LimitCheckError(f"Plan does not define {limit_key}", kind=kind)
        limit = int(limits[limit_key])

        count_response = await (
            self.client.table(table)
            .select("id", count="exact")
            .eq("document_id", document_id)
            .execute()
        )
        current = count_response.count
        if current is None:
            current = len(count_response.data or [])

        return LimitCheck(allowed=limit == UNLIMITED or current < limit, current=current, limit=limit)

    @staticmethod
    def _parse(kind: str, data: Any) -> LimitCheck:
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise LimitCheckError(f"Malformed {kind} limit response", kind=kind)
        try:
            return LimitCheck(
                allowed=bool(data["allowed"]),
                current=int(data["current"]),
                limit=int(data["limit"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LimitCheckError(f"Malformed {kind} limit response: {e}", kind=kind) from e
