"""finsync: financial calendar reconciliation with Google Calendar."""
