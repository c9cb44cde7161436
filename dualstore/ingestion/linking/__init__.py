"""
Cross-Reference Linking

Modules:
    linker: Chunk-to-entity link detection and the reverse index
"""

from dualstore.ingestion.linking.linker import CrossReferenceLinker, EntityCatalog, LinkResult

__all__ = ["CrossReferenceLinker", "EntityCatalog", "LinkResult"]
