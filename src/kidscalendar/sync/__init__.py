"""
Remote synchronization.

Components:
- mapping.py: remote row <-> domain record translation
- remote.py: PostgREST adapter for the RemoteStore port (httpx)
- calls.py: timeout + retry wrapper around remote calls
- reconciler.py: idempotent pushes and full family re-fetch
- realtime.py: change listener that triggers re-fetches (SSE transport)
- migration.py: one-time upload of a pre-sync local snapshot
- family.py: profiles, families and invitation codes
"""
