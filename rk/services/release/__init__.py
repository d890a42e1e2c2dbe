"""Versioned multi-artifact release pipeline.

Stages, leaves first:
- semver / version_store: read, bump and rewrite the version pair
- commit: single atomic commit to mainline, yielding the pinned commit
- artifacts: per-platform binary fan-out and the transient artifact store
- publisher: GitHub release from the complete artifact set
- image / chart: container image and Helm chart publishing
- orchestrator: DAG scheduling across all of the above
"""
