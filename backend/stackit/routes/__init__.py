# Routes package init
"""
StackIt Backend — API Routes Package
======================================

Route Inventory:
    - auth.py:      /api/auth/register, /login, /logout, /reset-password,
                    /password-strength and GET /api/profile
    - questions.py: /api/questions (feed, submit, preview) and the
                    question thread endpoints under /api/questions/{id}
    - admin.py:     /api/admin/users (list, delete)
    - files.py:     GET /api/files/{path} (local object store)
    - health.py:    GET /health

Routes stay thin: read the request, call a service, shape the response.
"""
