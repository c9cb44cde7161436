"""
Relationship Resolution

Resolves foreign keys between structured tables and decides whether an
incoming table extends, merges into, or is created alongside known tables.

Algorithm:
    1. Detect FK candidates (*_id, *_key, *_code) on a materialized table
    2. For each candidate, look for a table named after the stem whose
       primary key values cover the candidate's non-null values
    3. Resolved -> Relationship; otherwise -> PendingRelationship(hint=stem)
    4. After every materialization, sweep the pending worklist against the
       new table and re-verify relationships that target it

Value domains are read from the structured store, so a relationship is
only ever recorded when every referencing value exists in the target.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from dualstore.config import DualStoreConfig
from dualstore.errors import MergeCandidateError
from dualstore.ingestion.resolution.keys import column_overlap, foreign_key_candidates
from dualstore.storage.base import StorageBackend
from dualstore.types import (
    IngestionState,
    PendingRelationship,
    Relationship,
    SchemaAction,
    SchemaDecision,
    TableSpec,
)
from dualstore.utils.text import name_variants

logger = logging.getLogger(__name__)


def table_matches_hint(table: str, hint: str) -> bool:
    """True if a table name is an inflection of an FK stem (customers ~ customer)."""
    return table in name_variants(hint) or hint in name_variants(table)


class RelationshipResolver:
    """
    Foreign-key resolution over the structured store.

    Usage:
        resolver = RelationshipResolver(storage, config)
        decision = resolver.decide_schema_action("customers", columns, state)
        ...  # materialize
        await resolver.detect_relationships(spec, state)
        await resolver.sweep_pending(spec, state)
    """

    def __init__(self, storage: StorageBackend, config: DualStoreConfig | None = None):
        self.storage = storage
        self.config = config or DualStoreConfig()

    # -------------------------------------------------------------------------
    # Extend / merge / create
    # -------------------------------------------------------------------------

    def decide_schema_action(
        self,
        table_name: str,
        columns: list[str],
        state: IngestionState,
        decisions: Mapping[str, str] | None = None,
    ) -> SchemaDecision:
        """
        Decide how an incoming table relates to known tables.

        Operator decisions take precedence: {new: existing} extends the
        existing table, {new: new} forces creation regardless of overlap.

        Returns:
            SchemaDecision (extend on exact name match, merge_candidate above
            the overlap threshold, create otherwise)
        """
        decisions = decisions or {}
        target = decisions.get(table_name)

        if target is not None and target != table_name and target in state.tables:
            return SchemaDecision(action=SchemaAction.EXTEND, table_name=target)

        if table_name in state.tables:
            return SchemaDecision(action=SchemaAction.EXTEND, table_name=table_name)

        if target == table_name:
            return SchemaDecision(action=SchemaAction.CREATE, table_name=table_name)

        best_name: str | None = None
        best_overlap = 0.0
        for name in sorted(state.tables):
            overlap = column_overlap(columns, state.tables[name].columns)
            if overlap > best_overlap:
                best_name, best_overlap = name, overlap

        if best_name is not None and best_overlap > self.config.resolution_merge_overlap:
            return SchemaDecision(
                action=SchemaAction.MERGE_CANDIDATE,
                table_name=table_name,
                overlap_with=best_name,
                overlap=best_overlap,
            )

        return SchemaDecision(action=SchemaAction.CREATE, table_name=table_name)

    def require_decision(self, decision: SchemaDecision) -> None:
        """
        Raise for decisions that need an operator.

        Raises:
            MergeCandidateError: If the decision is a merge candidate
        """
        if decision.action == SchemaAction.MERGE_CANDIDATE:
            assert decision.overlap_with is not None
            raise MergeCandidateError(decision.table_name, decision.overlap_with, decision.overlap)

    # -------------------------------------------------------------------------
    # Foreign keys
    # -------------------------------------------------------------------------

    async def _covers(self, target: TableSpec, table: str, column: str) -> bool:
        """True if target's primary key values cover table.column's values."""
        if target.primary_key is None:
            return False
        values = await self.storage.column_values(table, column)
        if not values:
            return False
        domain = await self.storage.column_values(target.name, target.primary_key)
        return values <= domain

    async def detect_relationships(
        self,
        spec: TableSpec,
        state: IngestionState,
    ) -> list[Relationship]:
        """
        Re-detect every foreign key originating from a table.

        Previous relationships and pending entries of the table are cleared
        first, so re-materializing a table never leaves stale edges.

        Returns:
            Relationships resolved for this table
        """
        state.clear_foreign_keys(spec.name)
        resolved: list[Relationship] = []

        for column, stem in foreign_key_candidates(spec.columns, spec.primary_key):
            targets = [
                state.tables[name] for name in sorted(state.tables)
                if table_matches_hint(name, stem) and state.tables[name].primary_key
            ]
            relationship: Relationship | None = None
            for target in targets:
                if await self._covers(target, spec.name, column):
                    assert target.primary_key is not None
                    relationship = Relationship(
                        from_table=spec.name,
                        from_column=column,
                        to_table=target.name,
                        to_column=target.primary_key,
                    )
                    break

            if relationship is not None:
                state.add_relationship(relationship)
                resolved.append(relationship)
                logger.debug(
                    f"Resolved {spec.name}.{column} -> "
                    f"{relationship.to_table}.{relationship.to_column}"
                )
            else:
                state.add_pending(
                    PendingRelationship(
                        table=spec.name, column=column, awaited_table_name_hint=stem
                    )
                )
                logger.debug(f"Pending {spec.name}.{column} (awaiting '{stem}')")

        return resolved

    async def sweep_pending(
        self,
        spec: TableSpec,
        state: IngestionState,
    ) -> list[Relationship]:
        """
        Promote pending relationships satisfied by a newly materialized table.

        Entries whose hint names the table but whose values are not covered
        by its primary key stay pending.

        Returns:
            Relationships promoted by this sweep
        """
        if spec.primary_key is None:
            return []

        promoted: list[Relationship] = []
        for pending in list(state.pending_relationships):
            if not table_matches_hint(spec.name, pending.awaited_table_name_hint):
                continue
            if pending.table not in state.tables:
                continue
            if await self._covers(spec, pending.table, pending.column):
                relationship = Relationship(
                    from_table=pending.table,
                    from_column=pending.column,
                    to_table=spec.name,
                    to_column=spec.primary_key,
                )
                state.add_relationship(relationship)
                promoted.append(relationship)
                logger.info(
                    f"Resolved pending relationship {pending.table}.{pending.column} -> "
                    f"{spec.name}.{spec.primary_key}"
                )
        return promoted

    async def revalidate_targets(
        self,
        spec: TableSpec,
        state: IngestionState,
    ) -> list[PendingRelationship]:
        """
        Re-verify relationships pointing at a table whose rows changed.

        Relationships whose target key changed or no longer covers the
        referencing values are demoted back to pending.

        Returns:
            Demoted entries
        """
        demoted: list[PendingRelationship] = []
        for relationship in state.relationships_to(spec.name):
            if relationship.from_table == spec.name:
                continue
            still_valid = (
                spec.primary_key == relationship.to_column
                and await self._covers(spec, relationship.from_table, relationship.from_column)
            )
            if still_valid:
                continue
            hint = _stem_of(relationship.from_column)
            pending = PendingRelationship(
                table=relationship.from_table,
                column=relationship.from_column,
                awaited_table_name_hint=hint,
            )
            state.add_pending(pending)
            demoted.append(pending)
            logger.warning(
                f"Relationship {relationship.from_table}.{relationship.from_column} -> "
                f"{spec.name} no longer holds; moved back to pending"
            )
        return demoted

    async def resolve_after_materialize(
        self,
        spec: TableSpec,
        state: IngestionState,
    ) -> list[Relationship]:
        """Run FK detection, target re-verification and the pending sweep for one table."""
        resolved = await self.detect_relationships(spec, state)
        await self.revalidate_targets(spec, state)
        resolved += await self.sweep_pending(spec, state)
        return resolved


def _stem_of(column: str) -> str:
    candidates = foreign_key_candidates([column])
    return candidates[0][1] if candidates else column
