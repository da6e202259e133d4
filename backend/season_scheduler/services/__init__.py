"""
Services Layer

Scheduling logic behind the scheduler endpoints:
- solve is read-only: it takes a ProblemSpec plus a snapshot of committed
  games and returns proposed assignments
- apply is the only path that writes to the schedule store
- Nothing here depends on HTTP request/response objects
"""
