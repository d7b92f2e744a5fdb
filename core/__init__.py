"""Core application for the CareLink backend.

Contains the table models, the REST API, the realtime change feed
(``core.realtime``) and the client-side live view library
(``core.live``).
"""
