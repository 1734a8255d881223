"""
Prefect flows.

Flows:
- walkthrough: Run the lesson queries against OBIS (or GBIF), cache each
  result set, and derive the tables the lesson asks for

Usage (local):
    python -m obis_explorer.flows.walkthrough

Usage (Prefect):
    prefect server start  # Optional, for dashboard
    prefect deployment run 'obis-walkthrough/default'
"""
