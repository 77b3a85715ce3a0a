"""Core sync logic: retry policy, workflow and orchestration."""
