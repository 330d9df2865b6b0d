"""Read-only view of approver workload.

The aggregate is maintained elsewhere and may lag behind reality; two
concurrent submissions can both see the same approver as least loaded.
That over-assignment is accepted rather than locked against.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from assignflow.core.context import OrgContext
from assignflow.core.errors import RoutingStoreError, WorkloadUnavailableError
from assignflow.routing.store import RoutingStore
from assignflow.routing.types import ApproverWorkload

logger = logging.getLogger(__name__)


class WorkloadSnapshotProvider:
    def __init__(self, store: RoutingStore) -> None:
        self.store = store

    def get_workloads(self, ctx: OrgContext, approver_ids: Iterable[str]) -> dict[str, ApproverWorkload]:
        """Return workloads keyed by approver id.

        Approvers without an aggregate row get a zero workload.  Raises
        ``WorkloadUnavailableError`` when the aggregate cannot be read.
        """
        ids = list(dict.fromkeys(approver_ids))
        try:
            rows = self.store.fetch_workloads(ctx, ids)
        except RoutingStoreError as exc:
            raise WorkloadUnavailableError("approver workload snapshot unavailable") from exc

        snapshot = {approver_id: ApproverWorkload(approver_id=approver_id) for approver_id in ids}
        for row in rows:
            snapshot[row.approver_id] = row
        logger.debug("Workload snapshot: org=%s approvers=%d rows=%d", ctx.organization_id, len(ids), len(rows))
        return snapshot

    def scores(self, ctx: OrgContext, approver_ids: Iterable[str]) -> dict[str, int]:
        return {approver_id: wl.score for approver_id, wl in self.get_workloads(ctx, approver_ids).items()}
