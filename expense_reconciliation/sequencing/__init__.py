"""
Sequencing engine: category grouping and date ordering of records.
"""

from .document_sorter import CATEGORY_PRIORITY, DocumentSorter, DocumentUnit, sort_documents

__all__ = [
    "CATEGORY_PRIORITY",
    "DocumentSorter",
    "DocumentUnit",
    "sort_documents"
]
