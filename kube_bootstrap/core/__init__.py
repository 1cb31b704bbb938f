"""Core components for cluster provisioning.

This module contains the foundational components: configuration, AWS
client management, external command execution, bounded retry,
create-if-absent, step pipelines, and the confirmation gate.
"""
