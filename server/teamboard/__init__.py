"""
Teamboard: backend for a small team-productivity app.

Personal and group to-dos, notes and group chat behind a FastAPI service,
stored either in a SQL database or, for local development, in a single JSON
file.
"""
