"""
Tests package - Test suite for the Zitadel access operator.

Contains:
- unit/: Unit tests for individual components
- fixtures/: Sample resources and in-memory adapter fakes
"""
