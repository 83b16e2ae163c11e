"""Daily task engine.

Design:

- The persisted store is the only state shared between ticks. A tick loads the
  task for a date, performs at most one phase of work, writes the new state and
  returns.
- Task lifecycle: ``init -> listed -> processing -> aggregating -> published ->
  archived``. Manual retry may re-open ``aggregating`` to ``processing``.
- Items are claimed in bounded batches with a conditional UPDATE and a claim
  token; result writes are conditional on that token, so an item abandoned by a
  crashed tick can be reclaimed by the watchdog without double writes.
- Per-item failures are data (``ItemOutcome``), not exceptions. Phase failures
  are recorded in ``last_error`` and leave the task where it was.
"""
