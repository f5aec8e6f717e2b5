"""HTTP routers exposing the session manager to the UI layer."""
