"""Pydantic schemas shared by services and the web layer."""
