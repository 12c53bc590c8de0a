"""
Team Flow - task analytics for member organizations.

Aggregates an organization's tasks into the team workload and flow-health
dashboard snapshots served by the ``backend`` package.
"""
