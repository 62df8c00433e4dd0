"""Shared utilities: telemetry and cross-cutting helpers.

Used by application and infrastructure. No storage logic.
"""
