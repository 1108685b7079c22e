# Routes package init
"""
RadCatalog Backend - API Routes Package
=========================================

Route Inventory:
    - subspecialties.py: GET  /api/subspecialties[/hierarchical|/{code}|/{code}/templates]
    - templates.py:      GET  /api/templates[/{template_id}|/{template_id}/subspecialties]
    - sync.py:           POST /api/sync/*  (sync, refresh, generate)
    - health.py:         GET  /health

Routes stay thin: parse parameters, call a service, wrap the result in the
response envelope. Business rules live in app/services.
"""
