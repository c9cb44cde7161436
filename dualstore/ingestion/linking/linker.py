"""
Cross-Reference Linker

Links corpus chunks to structured rows and maintains the reverse index
({table}.{id} -> chunk ids) in IngestionState.

Detection priority (first success wins, no cumulative scoring):
    1. explicit_id:     identifier tokens in the text equal to primary-key values
    2. entity_name:     display-name values (name, title, label, *_name) in the text
    3. section_context: heading equal to a table name or an entity category
    4. similarity:      external similarity fallback, if configured

An unlinked chunk is a valid outcome. A link found by a stronger method is
never replaced by a weaker one on re-linking.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from dualstore.config import DualStoreConfig
from dualstore.providers.base import CandidateEntity, SimilarityLinker
from dualstore.storage.base import StorageBackend
from dualstore.types import Chunk, IngestionState, LinkMethod, LinkType
from dualstore.utils.text import is_numeric, name_variants, normalize_identifier

logger = logging.getLogger(__name__)

# Identifier tokens: plain integers or codes such as INV-2024-001, SKU42
_ID_TOKEN = re.compile(r"(?<![\w.-])([A-Za-z]{1,10}[-_]?\d[\w-]*|\d+)(?![\w-])(?!\.\d)")

_DISPLAY_COLUMNS = ("name", "title", "label", "display_name", "full_name")
_CATEGORY_COLUMNS = ("category", "type", "kind", "segment", "group", "class")


def _is_display_column(column: str) -> bool:
    return column in _DISPLAY_COLUMNS or column.endswith("_name")


def _is_category_column(column: str) -> bool:
    return column in _CATEGORY_COLUMNS or column.endswith(("_category", "_type", "_segment"))


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", text) is not None


@dataclass
class _TableEntities:
    """Lookup structures for one table with a primary key."""

    name: str
    mentions: list[str]
    ids: set[str] = field(default_factory=set)
    names: dict[str, list[str]] = field(default_factory=dict)
    categories: dict[str, list[str]] = field(default_factory=dict)
    labels: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class LinkResult:
    """Outcome of one detection method."""

    table: str | None = None
    ids: list[str] = field(default_factory=list)
    link_type: LinkType = LinkType.NONE
    method: LinkMethod = LinkMethod.NONE

    @property
    def found(self) -> bool:
        return self.link_type != LinkType.NONE


class EntityCatalog:
    """
    Snapshot of linkable entities, built once per linking pass.

    Only tables with a primary key take part; without one a row cannot be
    identified.
    """

    def __init__(self, tables: list[_TableEntities]):
        self.tables = {t.name: t for t in tables}

    @classmethod
    async def build(
        cls,
        state: IngestionState,
        storage: StorageBackend,
        config: DualStoreConfig,
    ) -> "EntityCatalog":
        entries: list[_TableEntities] = []
        for name in sorted(state.tables):
            spec = state.tables[name]
            if spec.primary_key is None:
                continue
            words = name.replace("_", " ")
            mentions = sorted({v.replace("_", " ") for v in name_variants(name)} | {words})
            entry = _TableEntities(name=name, mentions=mentions)

            for row in await storage.read_table_rows(name):
                entity_id = row.get(spec.primary_key)
                if entity_id is None:
                    continue
                entry.ids.add(entity_id)
                for column, value in row.items():
                    if value is None:
                        continue
                    if _is_display_column(column):
                        label = value.strip()
                        if len(label) >= config.linking_min_name_length and not is_numeric(label):
                            entry.names.setdefault(label.lower(), []).append(entity_id)
                            entry.labels.append((entity_id, label))
                    elif _is_category_column(column):
                        entry.categories.setdefault(value.strip().lower(), []).append(entity_id)
            entries.append(entry)
        return cls(entries)

    def mentioned_tables(self, text: str) -> set[str]:
        """Tables whose name (any inflection) appears in the text."""
        lowered = text.lower().replace("_", " ")
        return {
            t.name for t in self.tables.values()
            if any(_contains_phrase(lowered, m) for m in t.mentions)
        }

    def candidates(self, limit: int) -> list[CandidateEntity]:
        result: list[CandidateEntity] = []
        for entry in self.tables.values():
            for entity_id, label in entry.labels:
                result.append(CandidateEntity(table=entry.name, entity_id=entity_id, label=label))
                if len(result) >= limit:
                    return result
        return result


def _pick_table(hits: dict[str, list[str]], mentioned: set[str]) -> str | None:
    """
    Choose one table among several with hits.

    A single table wins outright; otherwise the only mentioned table wins;
    otherwise the choice is ambiguous and no link is made.
    """
    if len(hits) == 1:
        return next(iter(hits))
    named = [t for t in hits if t in mentioned]
    if len(named) == 1:
        return named[0]
    return None


def _ordered_unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class CrossReferenceLinker:
    """
    Links chunks to structured entities.

    Usage:
        linker = CrossReferenceLinker(storage, config)
        catalog = await linker.build_catalog(state)
        chunk = await linker.link(chunk, state, catalog)
    """

    def __init__(
        self,
        storage: StorageBackend,
        config: DualStoreConfig | None = None,
        similarity: SimilarityLinker | None = None,
    ):
        self.storage = storage
        self.config = config or DualStoreConfig()
        self.similarity = similarity

    async def build_catalog(self, state: IngestionState) -> EntityCatalog:
        return await EntityCatalog.build(state, self.storage, self.config)

    # -------------------------------------------------------------------------
    # Detection methods
    # -------------------------------------------------------------------------

    def match_explicit_ids(self, text: str, catalog: EntityCatalog) -> LinkResult:
        """
        Identifier tokens equal to primary-key values.

        Coded tokens (letters + digits) link on their own. Bare numbers only
        link when the table's name also appears in the text.
        """
        tokens = _ordered_unique(m.group(1) for m in _ID_TOKEN.finditer(text))
        if not tokens:
            return LinkResult()
        mentioned = catalog.mentioned_tables(text)

        hits: dict[str, list[str]] = {}
        for entry in catalog.tables.values():
            ids = [
                t for t in tokens
                if t in entry.ids and (not t.isdigit() or entry.name in mentioned)
            ]
            if ids:
                hits[entry.name] = ids

        table = _pick_table(hits, mentioned)
        if table is None:
            return LinkResult()
        ids = hits[table][: self.config.linking_max_linked_ids]
        return LinkResult(
            table=table,
            ids=ids,
            link_type=LinkType.DESCRIBES if len(ids) == 1 else LinkType.REFERENCES,
            method=LinkMethod.EXPLICIT_ID,
        )

    def match_entity_names(self, text: str, catalog: EntityCatalog) -> LinkResult:
        """Display-name values appearing as whole words in the text."""
        lowered = text.lower()
        hits: dict[str, list[str]] = {}
        for entry in catalog.tables.values():
            ids: list[str] = []
            for label in sorted(entry.names, key=lambda n: lowered.find(n)):
                if _contains_phrase(lowered, label):
                    ids.extend(entry.names[label])
            if ids:
                hits[entry.name] = _ordered_unique(ids)

        if not hits:
            return LinkResult()
        most = max(len(ids) for ids in hits.values())
        leaders = {t: ids for t, ids in hits.items() if len(ids) == most}
        table = _pick_table(leaders, catalog.mentioned_tables(text))
        if table is None:
            return LinkResult()
        ids = hits[table][: self.config.linking_max_linked_ids]
        return LinkResult(
            table=table,
            ids=ids,
            link_type=LinkType.DESCRIBES if len(ids) == 1 else LinkType.REFERENCES,
            method=LinkMethod.ENTITY_NAME,
        )

    def match_section(self, section: str, catalog: EntityCatalog) -> LinkResult:
        """
        Heading text matching a table name or an entity category.

        Headings are tried innermost first. A table-name match links the
        chunk to the table as a whole (no ids); a category match links it to
        every entity in that category.
        """
        headings = [h.strip() for h in section.split(" > ") if h.strip()]
        for heading in reversed(headings):
            ident = normalize_identifier(heading)
            for entry in catalog.tables.values():
                if ident and (ident in name_variants(entry.name) or entry.name in name_variants(ident)):
                    return LinkResult(
                        table=entry.name,
                        link_type=LinkType.CONTEXTUALIZES,
                        method=LinkMethod.SECTION_CONTEXT,
                    )
            hits = {
                entry.name: entry.categories[heading.lower()]
                for entry in catalog.tables.values()
                if heading.lower() in entry.categories
            }
            table = _pick_table(hits, set())
            if table is not None:
                return LinkResult(
                    table=table,
                    ids=_ordered_unique(hits[table])[: self.config.linking_max_linked_ids],
                    link_type=LinkType.SUMMARIZES,
                    method=LinkMethod.SECTION_CONTEXT,
                )
        return LinkResult()

    async def match_similarity(self, text: str, catalog: EntityCatalog) -> LinkResult:
        """Best similarity match above the configured threshold."""
        if self.similarity is None:
            return LinkResult()
        candidates = catalog.candidates(self.config.linking_similarity_candidates)
        if not candidates:
            return LinkResult()
        matches = await self.similarity.similarity_link(text, candidates)
        if not matches or matches[0].score < self.config.linking_similarity_threshold:
            return LinkResult()
        best = matches[0]
        return LinkResult(
            table=best.table,
            ids=[best.entity_id],
            link_type=LinkType.REFERENCES,
            method=LinkMethod.SIMILARITY,
        )

    # -------------------------------------------------------------------------
    # Linking
    # -------------------------------------------------------------------------

    async def detect(self, chunk: Chunk, catalog: EntityCatalog) -> LinkResult:
        """Run the detection methods in priority order, first success wins."""
        for result in (
            self.match_explicit_ids(chunk.content, catalog),
            self.match_entity_names(chunk.content, catalog),
            self.match_section(chunk.section, catalog),
        ):
            if result.found:
                return result
        return await self.match_similarity(chunk.content, catalog)

    async def link(
        self,
        chunk: Chunk,
        state: IngestionState,
        catalog: EntityCatalog | None = None,
    ) -> Chunk:
        """
        Link one chunk and record it in state.

        An existing link is kept unless the new one comes from a method at
        least as strong. Row-identifier links are never revisited.

        Returns:
            The (possibly updated) chunk
        """
        if chunk.link_method == LinkMethod.ROW_IDENTIFIER:
            return chunk
        if catalog is None:
            catalog = await self.build_catalog(state)

        result = await self.detect(chunk, catalog)
        if not result.found:
            return chunk
        if chunk.is_linked and chunk.link_method.rank < result.method.rank:
            return chunk

        updated = chunk.model_copy(
            update={
                "linked_table": result.table,
                "linked_ids": result.ids,
                "link_type": result.link_type,
                "link_method": result.method,
            }
        )
        if updated != chunk:
            state.record_chunk(updated)
            logger.debug(
                f"Linked {chunk.id} -> {result.table} {result.ids} "
                f"({result.link_type.value} via {result.method.value})"
            )
        return updated

    async def link_all(
        self,
        chunks: Iterable[Chunk],
        state: IngestionState,
        catalog: EntityCatalog | None = None,
    ) -> list[Chunk]:
        if catalog is None:
            catalog = await self.build_catalog(state)
        return [await self.link(chunk, state, catalog) for chunk in chunks]

    async def relink(
        self,
        state: IngestionState,
        exclude_source: str | None = None,
        catalog: EntityCatalog | None = None,
    ) -> int:
        """
        Re-run linking over stored chunks after the structured side changed.

        Returns:
            Number of chunks whose link changed
        """
        if catalog is None:
            catalog = await self.build_catalog(state)
        changed = 0
        for chunk in list(state.chunks.values()):
            if chunk.source_file == exclude_source:
                continue
            updated = await self.link(chunk, state, catalog)
            if updated != chunk:
                changed += 1
        if changed:
            logger.info(f"Re-linking updated {changed} chunks")
        return changed

    def prune_links(self, state: IngestionState, table: str) -> int:
        """Clear links pointing at a dropped table. Returns the number cleared."""
        cleared = 0
        for chunk in list(state.chunks.values()):
            if chunk.linked_table != table:
                continue
            state.record_chunk(
                chunk.model_copy(
                    update={
                        "linked_table": None,
                        "linked_ids": [],
                        "link_type": LinkType.NONE,
                        "link_method": LinkMethod.NONE,
                    }
                )
            )
            cleared += 1
        return cleared
