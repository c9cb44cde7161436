"""
Ingestion Pipeline

Turns extracted content blocks into structured tables and corpus chunks.

Modules:
    extraction/: Block extractors (markdown, CSV)
    classification/: Structured / unstructured / both routing
    resolution/: Primary keys, foreign keys, pending relationships
    assembly/: Dual-store writer
    linking/: Chunk-to-entity cross references
    pipeline: Per-source orchestration

Pipeline Stages:
    1. Extraction: File -> ContentBlocks (document order)
    2. Classification: Block -> destination
    3. Materialization: Tables (per-source segments) and corpus segment
    4. Resolution: FK detection and pending sweep after each table
    5. Linking: Chunks -> structured rows, reverse index
"""

from dualstore.ingestion.pipeline import IngestionPipeline, fingerprint_blocks

__all__ = ["IngestionPipeline", "fingerprint_blocks"]
