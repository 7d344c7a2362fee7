"""Book generation jobs: planning, state machine, finalization and the tick driver."""
