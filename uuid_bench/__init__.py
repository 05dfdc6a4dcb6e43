"""
uuid_bench
==========

Throughput benchmark for database primary-key generation strategies.

- Key generators: random, time-ordered, and a time-ordered key that is
  round-tripped through an incompatible GUID encoding
- Insert/select operation factories bound to one table per key type
- Bounded producer/consumer pipelines with per-worker failure cooldown
- Prometheus counters served by a small FastAPI app, plus a CLI runner
"""
