"""auth/ -- Account security and token lifecycle package for AccountGuard.

Layer rule: auth/ imports only stdlib + third-party libraries, plus the
Settings type from core/ for build_auth_service(). It does NOT import from
api/. api/ and main.py import from auth/, not the other way around.
"""
