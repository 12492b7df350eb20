# Gateways package init
"""
StackIt Backend — External Service Gateways
=============================================

What:  One module per external collaborator. Services depend only on the
       abstract classes; concrete clients are chosen in stackit.dependencies.

Gateway Inventory:
    - identity.py:       IdentityGateway / FirebaseIdentityGateway
    - document_store.py: DocumentStore / SqlDocumentStore
    - object_store.py:   ObjectStore / CloudinaryObjectStore / LocalObjectStore
"""
