"""Database tables, enumerations and Pydantic schemas."""
