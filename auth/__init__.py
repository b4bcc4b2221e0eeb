"""auth/ -- Sessions, password and Google login, and the request gate for tzlev.

Layer rule: auth/ may import from core/ and cache/. It does NOT import from
api/. api/ imports from auth/, not the other way around.
"""
