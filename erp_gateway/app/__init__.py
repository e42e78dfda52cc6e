"""
Gateway application for the ERP single-page app.

The gateway sits between the SPA and the hosted backend, providing:
- Schema-cache retries, query caching and cancellation via erp_core.retry
- Dashboard aggregates, system settings and shipping vendors
- Deduplicated user notifications the SPA renders as toasts

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.backend: REST client for the hosted backend.
- app.services: Collaborators that compose the retry wrapper.
- app.refresh: Refetch scheduling with per-run cancellation.
- app.messages: User-facing failure text.
"""
