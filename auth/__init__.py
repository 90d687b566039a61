"""auth/ -- Authentication and authorization core for Gatehouse.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
auth/dependencies.py is the only module that imports fastapi.
"""
