"""
Video Production CRM
Blueprint registry.

Every blueprint is named ``<area>_bp`` and mounted under ``/api/v1``;
``create_app`` registers them and the rate limiter keys its per-blueprint
limits on these names.
"""
