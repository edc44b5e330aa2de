"""
Infrastructure layer: execution targets, filesystem helpers, topology and services.
"""
