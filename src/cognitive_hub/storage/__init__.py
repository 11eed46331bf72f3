"""SQLite storage: engine policy, ORM tables, migrations, and the content store."""
