"""Version 1 of the SecHub REST API."""
