"""Shared helpers: severity logging, log configuration, context reader."""
