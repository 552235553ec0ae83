"""
Core services — scanning, emitting, validating and ejecting modules.

Pure logic over the filesystem.  Orchestration (loading config,
building the run context, reporting) lives in ``core.use_cases``.
"""
