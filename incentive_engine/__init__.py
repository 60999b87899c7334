"""Incentive engine: point ledger, skill sprints and achievement badges."""
