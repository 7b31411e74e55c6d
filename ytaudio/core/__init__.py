"""
Core application engine for orchestrating extraction jobs.

The `JobManager` turns requests into jobs and serves cache hits, delegating
the extraction itself to the `ExtractionOrchestrator`. The `ExpirySweeper`
runs independently and reconciles the cache against the TTL policy.
"""
