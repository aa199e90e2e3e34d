"""Audio device abstractions and backends."""
