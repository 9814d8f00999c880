"""
replcheck - fault-injection harness for MySQL Group Replication clusters.

Runs concurrent transactional workloads against a cluster under induced
faults, records every operation with an ok/fail/info outcome for history
analysis, and re-seeds the replication group when it loses quorum.
"""

__version__ = "0.1.0"
