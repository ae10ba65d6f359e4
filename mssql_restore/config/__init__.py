"""Configuration for mssql-restore."""
