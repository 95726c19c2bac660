"""posts/ -- HTTP client for the downstream posts API.

Layer rule: posts/ may import from auth/ and core/. It does NOT import from
api/ or web/.
"""
