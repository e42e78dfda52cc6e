"""
Backend package for the Gateway Service.

Wraps the hosted backend's generated REST API (PostgREST) and auth endpoint.
Calls return ``QueryResult`` envelopes so they can be passed straight to the
retry wrapper.
"""
