"""Keystone — Pydantic schemas package."""
