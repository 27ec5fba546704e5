"""Path manifests: mantaray trie nodes and the two-entry manifest assembler."""

from manifest.assembler import INDEX_DOCUMENT_KEY, ManifestAssembler
from manifest.mantaray import MantarayFork, MantarayNode

__all__ = [
    "INDEX_DOCUMENT_KEY",
    "ManifestAssembler",
    "MantarayFork",
    "MantarayNode",
]
