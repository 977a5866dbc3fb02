"""Services used by the session orchestrator."""
