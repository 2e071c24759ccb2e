"""Background jobs: event names, dispatch, retry policy and the job registry."""
