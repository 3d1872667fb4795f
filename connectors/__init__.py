"""
Google OAuth connectors (GA4, Search Console, combined Google) and the
per-user token store.
"""
