"""Model provider contract and backends."""
