"""
Reconciliation of a freshly extracted PatchSet with the patch directory.

Records are paired with stored files strictly by sequence number. Only
positions whose content hash differs are written, so re-running on
unchanged history touches nothing and an upstream rebase that alters one
commit rewrites exactly one file.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List

from .config import Context
from .domain import PatchChange, PatchSet, ReconcilePlan, ReconcileResult
from .store import PatchStore, StoredPatch


class Reconciler:
    def __init__(self, store: PatchStore, ctx: Context) -> None:
        self.store = store
        self.log = ctx.log.getChild("reconcile")

    def plan(self, new_set: PatchSet) -> ReconcilePlan:
        """
        Compute the writes and deletes needed to make the store hold new_set.

        The store may contain gaps or several files with the same number
        after an interrupted run; surplus files are scheduled for deletion
        so the result is numbered 1..n again. For a partial set the stored
        patches past its end are kept; only extra files sharing a number
        with another are removed.
        """

        by_sequence: Dict[int, List[StoredPatch]] = defaultdict(list)
        for stored in self.store.load():
            by_sequence[stored.sequence].append(stored)
        self._warn_if_inconsistent(by_sequence)

        writes: List[PatchChange] = []
        deletes: List[PatchChange] = []
        unchanged: List[str] = []

        for record in new_set:
            candidates = by_sequence.pop(record.sequence, [])
            same_name = [c for c in candidates if c.name == record.file_name]

            if same_name and same_name[0].record.content_hash == record.content_hash:
                unchanged.append(record.file_name)
                replaced = same_name[0]
            elif same_name:
                replaced = same_name[0]
                writes.append(
                    PatchChange("update", record.sequence, record.file_name, replaced.name, record)
                )
            elif candidates:
                replaced = candidates[0]
                writes.append(
                    PatchChange("update", record.sequence, record.file_name, replaced.name, record)
                )
            else:
                replaced = None
                writes.append(PatchChange("add", record.sequence, record.file_name, None, record))

            for stale in candidates:
                if stale is not replaced:
                    deletes.append(PatchChange("delete", stale.sequence, stale.name))

        kept = 0
        for sequence in sorted(by_sequence):
            stored = by_sequence[sequence]
            if new_set.partial:
                stored = stored[1:]
                kept += 1
            for stale in stored:
                deletes.append(PatchChange("delete", stale.sequence, stale.name))

        if kept:
            self.log.info("Keeping %d stored patches past the last rebased commit", kept)

        return ReconcilePlan(changes=writes + deletes, unchanged=unchanged)

    def apply(self, plan: ReconcilePlan, stage: bool = True) -> ReconcileResult:
        """
        Carry out a plan: writes in sequence order, then deletions.

        A renamed update writes the new file before removing the old one,
        so an interruption leaves a duplicate rather than a gap.
        """

        result = ReconcileResult(plan=plan)

        for change in plan.changes:
            if change.action != "delete" and change.record is None:
                raise ValueError(f"planned {change.action} of {change.name} carries no record")

            if change.action == "add":
                self.store.create(change.name, change.record.content)
                result.written.append(change.name)
                self.log.info("Added %s", change.name)
            elif change.action == "update":
                self.store.overwrite(change.name, change.record.content)
                result.written.append(change.name)
                if change.old_name and change.old_name != change.name:
                    self.store.delete(change.old_name)
                    result.deleted.append(change.old_name)
                    self.log.info("Updated %s (was %s)", change.name, change.old_name)
                else:
                    self.log.info("Updated %s", change.name)
            else:
                self.store.delete(change.name)
                result.deleted.append(change.name)
                self.log.info("Removed %s", change.name)

        if stage:
            result.staged = self.store.stage(result.written + result.deleted)

        return result

    def reconcile(
        self, new_set: PatchSet, dry_run: bool = False, stage: bool = True
    ) -> ReconcileResult:
        plan = self.plan(new_set)
        self.log.info(
            "%d patches unchanged, %d to add, %d to update, %d to delete",
            len(plan.unchanged),
            len(plan.by_action("add")),
            len(plan.by_action("update")),
            len(plan.by_action("delete")),
        )
        if dry_run:
            return ReconcileResult(plan=plan)
        return self.apply(plan, stage=stage)

    def _warn_if_inconsistent(self, by_sequence: Dict[int, List[StoredPatch]]) -> None:
        sequences = sorted(by_sequence)
        if sequences != list(range(1, len(sequences) + 1)):
            self.log.warning(
                "Patch directory %s has gaps in its numbering; it will be rewritten",
                self.store.patch_dir,
            )
        for sequence in sequences:
            if len(by_sequence[sequence]) > 1:
                names = ", ".join(p.name for p in by_sequence[sequence])
                self.log.warning("Several patches share number %d: %s", sequence, names)
