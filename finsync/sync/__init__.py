"""Reconciliation between the local event store and Google Calendar."""
