# Models package init
"""
StackIt Backend — ORM Models

    - document.py: DocumentRecord, the single table behind SqlDocumentStore
"""
