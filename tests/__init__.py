"""
Testing package for Outreach Schedule API.

This package contains:
- Unit tests for the quota window and slot scheduler
- Service tests for the job lifecycle, job queries and task results
- Integration tests for API endpoints
"""
