"""
Team Flow Backend - HTTP adapter for the analytics dashboards.

This package provides a FastAPI backend that reads an organization's tasks
from Supabase and serves the aggregated dashboard snapshots to the frontend.
"""
