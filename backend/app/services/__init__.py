# Services package init
"""
RadCatalog Backend - Services Layer
=====================================

Service Inventory:
    - CatalogSource (abstract): contract for fetching the upstream catalog
    - RadReportClient: CatalogSource over the RSNA RadReport REST API (httpx)
    - RelationshipReconciler: upserts rows, rebuilds associations, recomputes counts
    - SyncService: fetch-then-reconcile flows, one transaction per run
    - TemplateRefresher: batched enrichment from upstream details (retry + fallback)
    - TemplateGenerator: local synthesis of missing template content
    - CatalogService: read queries behind the REST endpoints

Routes and the job entrypoint call these; none of them know about HTTP.
"""
