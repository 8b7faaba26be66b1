"""SQLite persistence for per-player mastery ledgers."""
