"""Project configuration package for the CareLink backend."""
