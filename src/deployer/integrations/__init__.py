"""
deployer.integrations - External Systems
==========================================

Adapters for the systems the deployer talks to. Today that is git, used by
the source synchronization processor.
"""
