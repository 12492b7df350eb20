# Schemas package init
"""
StackIt Backend — API Schemas

    - common.py:   ErrorResponse, MessageResponse, HealthResponse
    - account.py:  auth / profile / admin payloads
    - question.py: feed, composer, preview and question thread payloads
"""
