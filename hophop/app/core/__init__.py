"""Shared runtime identifiers."""

SERVICE_NAME = "hophop"
