"""Test helper modules for the protovend test suite.

- env: UpstreamRepo, a real local git repository used as a remote
"""
