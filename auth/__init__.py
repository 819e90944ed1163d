"""auth/ -- Users, login sessions, access tokens and CSRF binding for Gatehouse.

Layer rule: auth/ imports core/, stdlib and third-party libraries only.
core/ never imports from auth/.
"""
